import functools
import inspect
import logging
from collections.abc import Callable
from typing import override

from .cleanup import CleanupChain, noop, once
from .exceptions import (
    DiCallableError,
    DiError,
    DiInvalidWireTargetShapeError,
)
from .markers import (
    AfterWire,
    FieldBinding,
    ParameterBinding,
    bindings_for,
    hints_of,
    parameters_of,
)
from .registry import Registry
from .resolver import Resolver, Trail
from .types import Cleanup

logger = logging.getLogger(__name__)

Writer = Callable[[object], None]


class Wirer(Resolver):
    """
    Populates targets with resolved dependencies.

    Objects are wired field by field from their `Inject` markers, functions are called
    with resolved arguments. Values produced by factories are wired the same way
    before they are handed out.
    """

    def __init__(
        self,
        registry: Registry,
        *,
        allow_private_writes: bool = False,
        setter_prefix: str = "set_",
    ) -> None:
        super().__init__(registry)
        self._allow_private_writes: bool = allow_private_writes
        self._setter_prefix: str = setter_prefix

    # ----------------------------------------------------------------------------------
    #   Public
    # ----------------------------------------------------------------------------------

    def wire(self, target: object, /, dry_run: bool = False) -> Cleanup:
        """
        Wire an object's marked fields, or call a function with resolved arguments.

        Raises:
            * `DiInvalidWireTargetShapeError`: If the target can not be wired
            * `DiProviderNotFoundError`: If a dependency has no provider
            * `DiMultipleProvidersFoundError`: If a capability is ambiguous
            * `DiCallableError`: If a factory, the function or the hook raised
        """

        if inspect.isfunction(target) or inspect.ismethod(target):
            return self._call(target, dry_run=dry_run)

        if target is None or inspect.isclass(target) or inspect.ismodule(target):
            raise DiInvalidWireTargetShapeError(
                f"Wire target must be an object or a function, not `{target!r}`",
                service=self.__class__.__name__,
            )

        if inspect.isroutine(target) or isinstance(target, functools.partial):
            raise DiInvalidWireTargetShapeError(
                f"Wire target `{target!r}` is callable but has no inspectable"
                + " signature, wrap it in a plain function",
                service=self.__class__.__name__,
            )

        chain: CleanupChain = CleanupChain()
        try:
            self._populate(target, chain, dry_run=dry_run, trail=())
        except Exception:
            chain.rollback()
            raise

        if dry_run:
            return noop
        return chain.compose()

    # ----------------------------------------------------------------------------------
    #   Function mode
    # ----------------------------------------------------------------------------------

    def _call(self, func: Callable[..., object], /, dry_run: bool) -> Cleanup:
        qualname: str = func.__qualname__
        parameters: tuple[ParameterBinding, ...] = self._function_parameters(func)

        chain: CleanupChain = CleanupChain()
        try:
            args, kwargs = self.resolve_arguments(
                parameters, chain, owner=qualname, dry_run=dry_run, trail=()
            )
            if dry_run:
                return noop

            logger.debug("Calling `%s` with wired arguments", qualname)
            try:
                _ = func(*args, **kwargs)
            except DiError:
                raise
            except Exception as exc:
                raise DiCallableError(
                    f"Wired function `{qualname}` raised"
                    + f" `{exc.__class__.__name__}`: {exc}",
                    cause=exc,
                    service=self.__class__.__name__,
                ) from exc
        except Exception:
            chain.rollback()
            raise

        return chain.compose()

    def _function_parameters(
        self, func: Callable[..., object], /
    ) -> tuple[ParameterBinding, ...]:
        """
        Raises:
            * `DiInvalidWireTargetShapeError`: If the function takes no injectable
              parameter, declares a return value or is not a plain synchronous
              function
        """

        if (
            inspect.iscoroutinefunction(func)
            or inspect.isasyncgenfunction(func)
            or inspect.isgeneratorfunction(func)
        ):
            raise DiInvalidWireTargetShapeError(
                f"Wired function `{func.__qualname__}` must be a plain synchronous"
                + " function, its body would not run when called",
                service=self.__class__.__name__,
            )

        hints: dict[str, object] = hints_of(func, error=DiInvalidWireTargetShapeError)
        returns: object = hints.get("return")
        if returns is not None and returns is not type(None):
            raise DiInvalidWireTargetShapeError(
                f"Wired function `{func.__qualname__}` must not return a value,"
                + f" it declares `{returns!s}`",
                service=self.__class__.__name__,
            )

        parameters: tuple[ParameterBinding, ...] = parameters_of(
            func, error=DiInvalidWireTargetShapeError, hints=hints
        )
        if not parameters:
            raise DiInvalidWireTargetShapeError(
                f"Wired function `{func.__qualname__}` must accept at least one"
                + " annotated parameter",
                service=self.__class__.__name__,
            )
        return parameters

    # ----------------------------------------------------------------------------------
    #   Struct-field mode
    # ----------------------------------------------------------------------------------

    @override
    def _after_produce(
        self, value: object, chain: CleanupChain, /, dry_run: bool, trail: Trail
    ) -> None:
        if value is None or inspect.isclass(value) or inspect.isroutine(value):
            return
        self._populate(value, chain, dry_run=dry_run, trail=trail, strict=False)

    def _populate(
        self,
        target: object,
        chain: CleanupChain,
        /,
        dry_run: bool,
        trail: Trail,
        strict: bool = True,
    ) -> None:
        """Resolve and assign every marked field, then run the `AfterWire` hook."""

        bindings: tuple[FieldBinding, ...] = bindings_for(type(target), strict=strict)
        for binding in bindings:
            writer: Writer = self._writer_for(target, binding)
            link: Trail = (*trail, f"{binding.location} {binding.dependency.describe()}")
            value: object = self.resolve_dependency(
                binding.dependency, chain, dry_run=dry_run, trail=link
            )
            if not dry_run:
                self._write(writer, binding, value)

        if dry_run or not isinstance(target, AfterWire):
            return

        try:
            cleanup: Cleanup | None = target.after_wire()
        except DiError:
            raise
        except Exception as exc:
            raise DiCallableError(
                f"`{type(target).__qualname__}.after_wire` raised"
                + f" `{exc.__class__.__name__}`: {exc}",
                cause=exc,
                service=self.__class__.__name__,
            ) from exc

        if cleanup is None:
            return
        if not callable(cleanup):
            raise DiInvalidWireTargetShapeError(
                f"`{type(target).__qualname__}.after_wire` must return a cleanup"
                + f" callable or `None`, got `{cleanup!r}`",
                service=self.__class__.__name__,
            )
        hook_cleanup: Cleanup = once(cleanup)
        chain.acquire(hook_cleanup, undo=hook_cleanup)

    def _writer_for(self, target: object, binding: FieldBinding, /) -> Writer:
        """
        Pick how a field is assigned: public attribute, then `set_<field>` setter,
        then (opt-in only) a write that ignores privacy and frozen dataclasses.

        Raises:
            * `DiInvalidWireTargetShapeError`: If none of these is available
        """

        attr: str = binding.attr
        if _is_mutable(target, attr):
            return functools.partial(setattr, target, attr)

        setter: object = getattr(target, self._setter_prefix + attr.lstrip("_"), None)
        if callable(setter):
            return setter

        if self._allow_private_writes:

            def force(value: object) -> None:
                logger.warning("Forcing write into non-public field `%s`", binding.location)
                object.__setattr__(target, attr, value)

            return force

        raise DiInvalidWireTargetShapeError(
            f"Field `{binding.location}` is not writable: make it public, add a"
            + f" `{self._setter_prefix}{attr.lstrip('_')}` setter, or create the"
            + " container with `allow_private_writes=True`",
            service=self.__class__.__name__,
        )

    def _write(self, writer: Writer, binding: FieldBinding, value: object, /) -> None:
        try:
            writer(value)
        except DiError:
            raise
        except Exception as exc:
            raise DiInvalidWireTargetShapeError(
                f"Could not assign field `{binding.location}`: {exc}",
                cause=exc,
                service=self.__class__.__name__,
            ) from exc


def _is_mutable(target: object, attr: str, /) -> bool:
    if attr.startswith("_"):
        return False

    cls: type[object] = type(target)
    params: object = getattr(cls, "__dataclass_params__", None)
    if params is not None and getattr(params, "frozen", False):
        return False

    class_attr: object = inspect.getattr_static(cls, attr, None)
    if isinstance(class_attr, property) and class_attr.fset is None:
        return False

    return True
