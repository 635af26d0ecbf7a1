from __future__ import annotations

from collections.abc import Mapping
from typing import Self, TypeVar, overload

from .cleanup import noop
from .exceptions import DiError, DiValidationError
from .registry import Registry
from .types import Cleanup, ExcTraceback, ExcType, ExcValue
from .wiring import Wirer

T = TypeVar(name="T")


class Container:
    """
    Lazy dependency-wiring container.

    Providers are registered by name or by the type they produce, then resolved on
    demand while wiring an object's marked fields or a function's parameters.
    Designed for centralized registration in a composition root, used from a single
    thread.

    Usage:
    >>> container = Container()
    >>> container.register_named("count", 5)
    >>> container.register_type(SqlRepository)
    >>>
    >>> class Handler:
    >>>     count: Annotated[int, Inject("count")]
    >>>     repo: Annotated[Repository, Inject()]
    >>>
    >>> handler = Handler()
    >>> cleanup = container.wire(handler)
    >>> assert handler.count == 5
    PASSES
    """

    def __init__(
        self,
        *,
        allow_private_writes: bool = False,
        setter_prefix: str = "set_",
    ) -> None:
        self._registry: Registry = Registry()
        self._wirer: Wirer = Wirer(
            self._registry,
            allow_private_writes=allow_private_writes,
            setter_prefix=setter_prefix,
        )

    def __len__(self) -> int:
        return len(self._registry)

    # ----------------------------------------------------------------------------------
    #   Context manager
    # ----------------------------------------------------------------------------------

    def __enter__(self) -> Self:
        """Enter the context and tear down all cached instances upon exit."""

        return self

    def __exit__(
        self, exc_type: ExcType, exc_val: ExcValue, exc_tb: ExcTraceback
    ) -> None:
        """Tear down all cached instances on context exit."""

        self.teardown()

    # ----------------------------------------------------------------------------------
    #   Registering
    # ----------------------------------------------------------------------------------

    def register_named(
        self, name: str, provider: object, /, transient: bool = False
    ) -> None:
        """
        Register a value or factory under a name.

        Raises:
            * `DiContainerError`: If the name is empty
            * `DiInvalidProviderShapeError`: If the factory shape is not supported
            * `DiProviderAlreadyExistsError`: If the name is taken
        """

        self._registry.add_named({name: provider}, transient=transient)

    def register_named_many(
        self, providers: Mapping[str, object], /, transient: bool = False
    ) -> None:
        """
        Register several `name -> provider` pairs at once. Either all of them are
        registered or, on error, none.
        """

        self._registry.add_named(providers, transient=transient)

    def register_type(self, *providers: object, transient: bool = False) -> None:
        """
        Register values or factories under the type they produce. Either all of them
        are registered or, on error, none.

        Raises:
            * `DiInvalidProviderShapeError`: If a factory shape is not supported
            * `DiProviderAlreadyExistsError`: If a produced type is taken
        """

        self._registry.add_typed(providers, transient=transient)

    def is_registered(self, key: str | type[object], /) -> bool:
        """Whether a name, a type or a capability would find at least one provider."""

        return key in self._registry

    # ----------------------------------------------------------------------------------
    #   Resolving
    # ----------------------------------------------------------------------------------

    def resolve_by_name(
        self, name: str, /, *, transient: bool = False, dry_run: bool = False
    ) -> tuple[object, Cleanup]:
        """
        Resolve a named provider into `(value, cleanup)`.

        Raises:
            * `DiProviderNotFoundError`: If a provider in the graph is missing
            * `DiMultipleProvidersFoundError`: If a capability in the graph is ambiguous
            * `DiCircularDependencyError`: If the graph has a cycle
            * `DiCallableError`: If a factory raised
        """

        return self._wirer.resolve_by_name(name, transient=transient, dry_run=dry_run)

    @overload
    def resolve_by_type(
        self, tp: type[T], /, *, transient: bool = False, dry_run: bool = False
    ) -> tuple[T, Cleanup]: ...

    @overload
    def resolve_by_type(
        self, tp: object, /, *, transient: bool = False, dry_run: bool = False
    ) -> tuple[object, Cleanup]: ...

    def resolve_by_type(
        self, tp: object, /, *, transient: bool = False, dry_run: bool = False
    ) -> tuple[object, Cleanup]:
        """
        Resolve a concrete type or a capability into `(value, cleanup)`.

        Raises:
            * `DiProviderNotFoundError`: If nothing provides the type
            * `DiMultipleProvidersFoundError`: If a capability matches several providers
            * `DiCircularDependencyError`: If the graph has a cycle
            * `DiCallableError`: If a factory raised
        """

        return self._wirer.resolve_by_type(tp, transient=transient, dry_run=dry_run)

    # ----------------------------------------------------------------------------------
    #   Wiring
    # ----------------------------------------------------------------------------------

    def wire(self, target: object, /) -> Cleanup:
        """
        Populate an object's `Inject` fields, or call a function with resolved
        arguments. Returns one cleanup for everything acquired.

        Raises:
            * `DiInvalidWireTargetShapeError`: If the target can not be wired
            * `DiProviderNotFoundError`: If a dependency has no provider
            * `DiMultipleProvidersFoundError`: If a capability is ambiguous
            * `DiCallableError`: If a factory, the function or `after_wire` raised
        """

        return self._wirer.wire(target)

    def dry_run(self, target: object, /) -> Cleanup:
        """
        Check that `target` could be wired without running any factory, writing any
        field or calling the function. Raises what `wire` would raise, except errors
        from factory bodies.
        """

        _ = self._wirer.wire(target, dry_run=True)
        return noop

    # ----------------------------------------------------------------------------------
    #   Validation
    # ----------------------------------------------------------------------------------

    def validate(self) -> None:
        """
        Dry-run every registration and its dependency graph.
        Useful to run at startup to catch configuration errors early.

        Raises:
            * `DiValidationError`: If any registration can not be resolved
        """

        errors: list[str] = []
        for descriptor in self._registry.descriptors():
            try:
                self._wirer.check(descriptor)
            except DiError as exc:
                errors.append(f"Provider `{descriptor.label}`: {exc.msg}")

        if errors:
            _errs: str = "Errors" if len(errors) > 1 else "Error"
            err_msg: str = f"{_errs} raised during container validation:\n"
            for index, err in enumerate[str](errors):
                err_msg += f"\n    Error {index}: {err}"

            raise DiValidationError(
                err_msg,
                service=self.__class__.__name__,
                context={"errors": errors},
            )

    # ----------------------------------------------------------------------------------
    #   Lifecycle
    # ----------------------------------------------------------------------------------

    def teardown(self) -> None:
        """
        Release every cached singleton in reverse order of creation and clear the
        caches. Registrations remain and resolve again to fresh instances.

        Raises:
            * `DiCallableError`: If cleanups raised, after all of them ran
        """

        self._wirer.teardown()
