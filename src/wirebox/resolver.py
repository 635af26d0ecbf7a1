import inspect
import logging
from collections.abc import Generator, Sequence
from typing import cast

from ._sentinels import Placeholder
from .cleanup import CleanupChain, noop, once, run_all
from .exceptions import (
    DiCallableError,
    DiCircularDependencyError,
    DiError,
    DiInvalidProviderShapeError,
    DiMultipleProvidersFoundError,
    DiProviderNotFoundError,
)
from .lifetimes import (
    LifetimeStrategy,
    ProviderDescriptor,
    Resolution,
    SingletonStrategy,
    TransientStrategy,
)
from .markers import Dependency, ParameterBinding, optional_of
from .registry import Registry, is_capability
from .types import Cleanup, Lifetime, Named

logger = logging.getLogger(__name__)

Trail = tuple[str, ...]


def placeholder(produced: object, /) -> object:
    """
    A value of the produced type allocated without running any user code: the bare
    instance when the type's `__new__` is not user-defined, a `Placeholder`
    otherwise.
    """

    if (
        isinstance(produced, type)
        and not is_capability(produced)
        and not inspect.isfunction(produced.__new__)
    ):
        try:
            return produced.__new__(produced)
        except TypeError:
            pass
    return Placeholder(produced)


def join_trail(trail: Trail, /) -> str:
    return " -> ".join(trail) if trail else "<root>"


class Resolver:
    """
    Resolves names, concrete types and capabilities into values, recursing into
    factory parameters. Every value acquired along the way leaves its cleanup in
    the caller's `CleanupChain`.
    """

    def __init__(self, registry: Registry) -> None:
        self._registry: Registry = registry
        self._strategies: dict[Lifetime, LifetimeStrategy] = {
            "singleton": SingletonStrategy(),
            "transient": TransientStrategy(),
        }
        self._resolution_stack: list[ProviderDescriptor] = []

    # ----------------------------------------------------------------------------------
    #   Public
    # ----------------------------------------------------------------------------------

    def resolve_by_name(
        self, name: str, /, *, transient: bool = False, dry_run: bool = False
    ) -> tuple[object, Cleanup]:
        """
        Resolve a named provider.

        Raises:
            * `DiProviderNotFoundError`: If no provider has this name
            * `DiCallableError`: If a factory raised
        """

        if not name:
            raise DiProviderNotFoundError(
                "No provider was found for an empty name",
                service=self.__class__.__name__,
                context={"name": name},
            )

        dependency: Dependency = Dependency(declared=object, name=name, transient=transient)
        return self._resolve_root(dependency, dry_run=dry_run)

    def resolve_by_type(
        self, tp: object, /, *, transient: bool = False, dry_run: bool = False
    ) -> tuple[object, Cleanup]:
        """
        Resolve a type or capability. Capabilities must match exactly one provider.

        Raises:
            * `DiProviderNotFoundError`: If no provider matches
            * `DiMultipleProvidersFoundError`: If a capability matches several providers
            * `DiCallableError`: If a factory raised
        """

        dependency: Dependency = Dependency(declared=tp, transient=transient)
        return self._resolve_root(dependency, dry_run=dry_run)

    def _resolve_root(
        self, dependency: Dependency, /, dry_run: bool
    ) -> tuple[object, Cleanup]:
        chain: CleanupChain = CleanupChain()
        try:
            value: object = self.resolve_dependency(
                dependency, chain, dry_run=dry_run, trail=()
            )
        except Exception:
            chain.rollback()
            raise

        if dry_run:
            return value, noop
        return value, chain.compose()

    def check(self, descriptor: ProviderDescriptor, /) -> None:
        """Dry-run one descriptor and its whole dependency graph."""

        _ = self._resolve_descriptor(
            descriptor, CleanupChain(), transient=False, dry_run=True, trail=()
        )

    def teardown(self) -> None:
        """
        Release every cached singleton, most recently created first, and clear the
        caches. Registrations stay resolvable.

        Raises:
            * `DiCallableError`: If cleanups raised, after all of them ran
        """

        strategy: LifetimeStrategy = self._strategies["singleton"]
        created: list[ProviderDescriptor] = []
        if isinstance(strategy, SingletonStrategy):
            created = strategy.created[:]
            strategy.created.clear()

        logger.debug("Tearing down %d cached instance(s)", len(created))
        run_all([d.teardown for d in reversed(created)], what="teardown")

    # ----------------------------------------------------------------------------------
    #   Dependencies
    # ----------------------------------------------------------------------------------

    def resolve_dependency(
        self,
        dependency: Dependency,
        chain: CleanupChain,
        /,
        dry_run: bool,
        trail: Trail,
    ) -> object:
        """Resolve what a field or parameter asks for, acquiring into `chain`."""

        if dependency.name:
            return self._resolve_name(dependency, chain, dry_run=dry_run, trail=trail)
        if dependency.element is not None:
            return self._collect(dependency, chain, dry_run=dry_run, trail=trail)
        return self._resolve_type(dependency, chain, dry_run=dry_run, trail=trail)

    def _resolve_name(
        self, dependency: Dependency, chain: CleanupChain, /, dry_run: bool, trail: Trail
    ) -> object:
        descriptor: ProviderDescriptor | None = self._registry.by_name(dependency.name)
        if descriptor is None:
            raise DiProviderNotFoundError(
                f"No provider was found for `{dependency.name}`: {join_trail(trail)}",
                service=self.__class__.__name__,
                context={"name": dependency.name, "trail": list(trail)},
            )

        return self._resolve_descriptor(
            descriptor, chain, transient=dependency.transient, dry_run=dry_run, trail=trail
        )

    def _resolve_type(
        self, dependency: Dependency, chain: CleanupChain, /, dry_run: bool, trail: Trail
    ) -> object:
        tp: object = dependency.declared
        matches: list[ProviderDescriptor] = self._registry.matching(tp)
        if not matches:
            raise DiProviderNotFoundError(
                f"No provider was found for type {dependency.describe()}:"
                + f" {join_trail(trail)}",
                service=self.__class__.__name__,
                context={"type": tp, "trail": list(trail)},
            )
        if len(matches) > 1:
            candidates: str = ", ".join(f"`{d.label}`" for d in matches)
            raise DiMultipleProvidersFoundError(
                f"Multiple providers satisfy {dependency.describe()} ({candidates}):"
                + f" {join_trail(trail)}",
                service=self.__class__.__name__,
                context={"type": tp, "candidates": [d.label for d in matches]},
            )

        return self._resolve_descriptor(
            matches[0], chain, transient=dependency.transient, dry_run=dry_run, trail=trail
        )

    def _collect(
        self, dependency: Dependency, chain: CleanupChain, /, dry_run: bool, trail: Trail
    ) -> dict[Named, object]:
        """Aggregate every named provider of the element type into `name -> value`."""

        element: object = dependency.element
        matches: dict[str, ProviderDescriptor] = self._registry.named_matching(element)
        if not matches:
            raise DiProviderNotFoundError(
                f"No named providers were found for {dependency.describe()}:"
                + f" {join_trail(trail)}",
                service=self.__class__.__name__,
                context={"element": element, "trail": list(trail)},
            )

        collection: dict[Named, object] = {}
        for name, descriptor in matches.items():
            collection[Named(name)] = self._resolve_descriptor(
                descriptor,
                chain,
                transient=dependency.transient,
                dry_run=dry_run,
                trail=trail,
            )
        return collection

    def resolve_arguments(
        self,
        parameters: Sequence[ParameterBinding],
        chain: CleanupChain,
        /,
        owner: str,
        dry_run: bool,
        trail: Trail,
    ) -> tuple[list[object], dict[str, object]]:
        """
        Resolve the arguments of a factory or wired function.

        Parameters with a default fall back to it when nothing is registered for
        their type, and `T | None` parameters fall back to `None`.
        """

        args: list[object] = []
        kwargs: dict[str, object] = {}
        for param in parameters:
            dependency: Dependency = param.dependency
            link: Trail = (*trail, f"{owner}({param.name}) {dependency.describe()}")

            value: object = param.default
            if dependency.name or dependency.element is not None:
                value = self.resolve_dependency(
                    dependency, chain, dry_run=dry_run, trail=link
                )
            elif self._registry.matching(dependency.declared):
                value = self.resolve_dependency(
                    dependency, chain, dry_run=dry_run, trail=link
                )
            elif (inner := optional_of(dependency.declared)) is not None:
                if self._registry.matching(inner):
                    value = self.resolve_dependency(
                        Dependency(declared=inner, transient=dependency.transient),
                        chain,
                        dry_run=dry_run,
                        trail=link,
                    )
                elif not param.has_default:
                    value = None
            elif not param.has_default:
                # Raises the not-found error with the full trail
                value = self.resolve_dependency(
                    dependency, chain, dry_run=dry_run, trail=link
                )

            if param.positional_only:
                args.append(value)
            else:
                kwargs[param.name] = value

        return args, kwargs

    # ----------------------------------------------------------------------------------
    #   Descriptors
    # ----------------------------------------------------------------------------------

    def _resolve_descriptor(
        self,
        descriptor: ProviderDescriptor,
        chain: CleanupChain,
        /,
        transient: bool,
        dry_run: bool,
        trail: Trail,
    ) -> object:
        """
        Resolve one descriptor according to its lifetime. Dry runs always walk the
        dependencies and never touch the cache.

        Raises:
            * `DiCircularDependencyError`: If the descriptor is already being resolved
        """

        if any(d is descriptor for d in self._resolution_stack):
            cycle: str = " -> ".join(d.label for d in self._resolution_stack)
            raise DiCircularDependencyError(
                f"Circular dependency detected: `{cycle} -> {descriptor.label}`",
                service=self.__class__.__name__,
            )

        self._resolution_stack.append(descriptor)
        try:
            if dry_run:
                return self._build(descriptor, dry_run=True, trail=trail).value

            lifetime: Lifetime = "transient" if transient else descriptor.lifetime
            strategy: LifetimeStrategy = self._strategies[lifetime]

            def build() -> Resolution:
                return self._build(descriptor, dry_run=False, trail=trail)

            resolution: Resolution = strategy.resolve(descriptor, build)
            chain.acquire(resolution.cleanup, undo=resolution.undo)
            return resolution.value
        finally:
            _ = self._resolution_stack.pop()

    def _build(
        self, descriptor: ProviderDescriptor, /, dry_run: bool, trail: Trail
    ) -> Resolution:
        """Resolve the factory's parameters, call it and wire the produced value."""

        child: CleanupChain = CleanupChain()
        try:
            args, kwargs = self.resolve_arguments(
                descriptor.parameters,
                child,
                owner=descriptor.label,
                dry_run=dry_run,
                trail=trail,
            )

            if dry_run:
                value: object = placeholder(descriptor.produced)
                self._after_produce(value, child, dry_run=True, trail=trail)
                return Resolution(value=value)

            logger.debug("Instantiating `%s`", descriptor.label)
            value, own = self._invoke(descriptor, args, kwargs)
            try:
                self._after_produce(value, child, dry_run=False, trail=trail)
            except Exception:
                child.rollback()
                try:
                    own()
                except Exception:
                    logger.exception(
                        "Cleanup of `%s` raised while unwinding a failed wiring",
                        descriptor.label,
                    )
                raise
        except Exception:
            child.rollback()
            raise

        undo: Cleanup | None = child.undo()

        def rollback() -> None:
            if undo is not None:
                undo()
            own()

        return Resolution(value=value, cleanup=child.compose(own), undo=rollback)

    def _invoke(
        self,
        descriptor: ProviderDescriptor,
        args: list[object],
        kwargs: dict[str, object],
        /,
    ) -> tuple[object, Cleanup]:
        """
        Call a factory and split its result into value and cleanup.

        Raises:
            * `DiCallableError`: If the factory raised
            * `DiInvalidProviderShapeError`: If the result does not match the shape
        """

        try:
            result: object = descriptor.factory(*args, **kwargs)
            if descriptor.shape == "value":
                return result, noop
            if descriptor.shape == "generator":
                return self._enter_generator(descriptor, result)
        except DiError:
            raise
        except Exception as exc:
            raise DiCallableError(
                f"Factory of `{descriptor.label}` raised `{exc.__class__.__name__}`: {exc}",
                cause=exc,
                service=self.__class__.__name__,
            ) from exc

        if not (isinstance(result, tuple) and len(result) == 2 and callable(result[1])):  # pyright: ignore[reportUnknownArgumentType]
            raise DiInvalidProviderShapeError(
                f"Factory of `{descriptor.label}` must return `(value, cleanup)`,"
                + f" got `{result!r}`",
                service=self.__class__.__name__,
            )
        value, cleanup = cast(tuple[object, Cleanup], result)
        return value, once(cleanup)

    def _enter_generator(
        self, descriptor: ProviderDescriptor, generator: object, /
    ) -> tuple[object, Cleanup]:
        gen: Generator[object, None, None] = cast(Generator[object, None, None], generator)
        try:
            value: object = next(gen)
        except StopIteration as exc:
            raise DiInvalidProviderShapeError(
                f"Generator factory of `{descriptor.label}` did not yield a value",
                service=self.__class__.__name__,
            ) from exc

        def finish() -> None:
            try:
                next(gen)
            except StopIteration:
                return
            except Exception as exc:
                raise DiCallableError(
                    f"Cleanup of `{descriptor.label}` raised"
                    + f" `{exc.__class__.__name__}`: {exc}",
                    cause=exc,
                    service=self.__class__.__name__,
                ) from exc
            gen.close()
            raise DiInvalidProviderShapeError(
                f"Generator factory of `{descriptor.label}` yielded more than once",
                service=self.__class__.__name__,
            )

        return value, once(finish)

    def _after_produce(
        self, value: object, chain: CleanupChain, /, dry_run: bool, trail: Trail
    ) -> None:
        """Hook for work on a freshly produced value, inside its own chain."""
