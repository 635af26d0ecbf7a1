from __future__ import annotations

import inspect
import logging
import weakref
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from inspect import Parameter, Signature
from types import UnionType
from typing import (
    Annotated,
    # Union is used only for runtime type checking
    Union,  # pyright: ignore[reportDeprecated]
    get_args,
    get_origin,
    get_type_hints,
)

from .exceptions import DiContainerError, DiInvalidWireTargetShapeError
from .types import Cleanup, Named

logger = logging.getLogger(__name__)

_MODIFIERS: frozenset[str] = frozenset({"transient"})


class Inject:
    """
    Wiring marker, attached through `typing.Annotated`.

    The payload is a comma-separated string: the first item is the provider name
    (empty means "resolve by the declared type"), the rest are modifiers.

    Usage:
    >>> class Handler:
    >>>     count: Annotated[int, Inject("count")]
    >>>     repo: Annotated[Repository, Inject()]
    >>>     clock: Annotated[Clock, Inject(",transient")]
    """

    __slots__ = ("name", "transient")

    def __init__(self, payload: str = "", /, *, transient: bool = False) -> None:
        name, *items = [part.strip() for part in payload.split(",")]
        modifiers: list[str] = [item for item in items if item]
        unknown: set[str] = set(modifiers) - _MODIFIERS
        if unknown:
            raise DiInvalidWireTargetShapeError(
                f"Unknown wiring modifier(s) `{', '.join(sorted(unknown))}`"
                + f" in marker payload `{payload}`",
                service="Inject",
            )

        self.name: str = name
        self.transient: bool = transient or ("transient" in modifiers)

    def __repr__(self) -> str:
        payload: str = self.name + (",transient" if self.transient else "")
        return f"Inject({payload!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Inject):
            return NotImplemented
        return (self.name, self.transient) == (other.name, other.transient)

    def __hash__(self) -> int:
        return hash((Inject, self.name, self.transient))


# =====================================================================================
#   Dependencies
# =====================================================================================


@dataclass(frozen=True, slots=True)
class Dependency:
    """What a field or parameter asks for."""

    declared: object
    name: str = ""
    transient: bool = False
    element: object | None = None
    """Element type for named-collection requests (`dict[Named, T]`)."""

    @property
    def is_collection(self) -> bool:
        return self.element is not None

    def describe(self) -> str:
        if self.name:
            return f'"{self.name}"'
        if self.element is not None:
            return f'"dict[Named, {_type_name(self.element)}]"'
        return f'"{_type_name(self.declared)}"'


def dependency_of(annotation: object, /) -> Dependency:
    """Split an annotation into declared type, marker and collection element."""

    marker: Inject | None = marker_of(annotation)
    declared: object = annotation
    if get_origin(annotation) is Annotated:
        declared = get_args(annotation)[0]

    element: object | None = None
    if get_origin(declared) in (dict, Mapping):
        args: tuple[object, ...] = get_args(declared)
        if len(args) == 2 and args[0] is Named:
            element = args[1]

    return Dependency(
        declared=declared,
        name=marker.name if marker is not None else "",
        transient=marker.transient if marker is not None else False,
        element=element,
    )


@dataclass(frozen=True, slots=True)
class ParameterBinding:
    """One parameter of a factory or wired function."""

    name: str
    dependency: Dependency
    positional_only: bool = False
    default: object = Parameter.empty

    @property
    def has_default(self) -> bool:
        return self.default is not Parameter.empty


def parameters_of(
    func: Callable[..., object],
    /,
    error: type[DiContainerError],
    hints: dict[str, object] | None = None,
    skip_self: bool = False,
) -> tuple[ParameterBinding, ...]:
    """
    Read the injectable parameters of a callable. With `skip_self`, the first
    parameter of an unbound `__init__` is left out.

    Raises:
        * `error`: If a parameter is variadic, or has neither annotation nor default
    """

    qualname: str = getattr(func, "__qualname__", repr(func))
    if hints is None:
        hints = hints_of(func, error=error)

    try:
        sig: Signature = inspect.signature(func)
    except (TypeError, ValueError) as exc:
        raise error(
            f"Signature of `{qualname}` can not be inspected", cause=exc
        ) from exc

    params: list[Parameter] = list(sig.parameters.values())
    if skip_self:
        params = params[1:]

    bindings: list[ParameterBinding] = []
    for param in params:
        if param.kind in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD):
            raise error(
                f"Parameter `{param.name}` of `{qualname}` is variadic, which can"
                + " not be injected",
            )

        if param.name not in hints:
            if param.default is Parameter.empty:  # pyright: ignore[reportAny]
                raise error(
                    f"Parameter `{param.name}` of `{qualname}` has no type hint"
                    + " and no default",
                )
            continue

        bindings.append(
            ParameterBinding(
                name=param.name,
                dependency=dependency_of(hints[param.name]),
                positional_only=param.kind is Parameter.POSITIONAL_ONLY,
                default=param.default,  # pyright: ignore[reportAny]
            )
        )

    return tuple(bindings)


def hints_of(
    func: Callable[..., object], /, error: type[DiContainerError]
) -> dict[str, object]:
    try:
        return get_type_hints(func, include_extras=True)
    except (NameError, TypeError) as exc:
        qualname: str = getattr(func, "__qualname__", repr(func))
        raise error(
            f"Annotations of `{qualname}` can not be evaluated", cause=exc
        ) from exc


def optional_of(declared: object, /) -> object | None:
    """The `T` of `T | None`, or `None` if `declared` is not optional."""

    if not isinstance(declared, UnionType) and get_origin(declared) is not Union:  # pyright: ignore[reportDeprecated]
        return None
    args: tuple[object, ...] = get_args(declared)
    non_none_types: list[object] = [t for t in args if t is not type(None)]
    if len(non_none_types) != 1 or len(non_none_types) == len(args):
        return None
    return non_none_types[0]


def marker_of(annotation: object, /) -> Inject | None:
    if get_origin(annotation) is not Annotated:
        return None
    for item in get_args(annotation)[1:]:
        if isinstance(item, Inject):
            return item
    return None


def _type_name(tp: object) -> str:
    if isinstance(tp, type):
        return tp.__qualname__
    return repr(tp).removeprefix("typing.")


# =====================================================================================
#   Field bindings
# =====================================================================================


@dataclass(frozen=True, slots=True)
class FieldBinding:
    """One wireable field of a class: where to write and what to resolve."""

    owner: str
    attr: str
    dependency: Dependency

    @property
    def location(self) -> str:
        return f"{self.owner}.{self.attr}"


# Keyed weakly so that wiring a class never keeps it alive
_bindings: weakref.WeakKeyDictionary[type[object], tuple[FieldBinding, ...]] = (
    weakref.WeakKeyDictionary()
)


def bindings_for(cls: type[object], /, strict: bool = True) -> tuple[FieldBinding, ...]:
    """
    Build the wiring table of a class once: every annotated attribute carrying an
    `Inject` marker, in declaration order (base classes first).

    With `strict=False`, classes whose annotations can not be evaluated have no
    bindings instead of failing. Such failures are not remembered.

    Raises:
        * `DiInvalidWireTargetShapeError`: If the class annotations can not be
          evaluated
    """

    cached: tuple[FieldBinding, ...] | None = _bindings.get(cls)
    if cached is not None:
        return cached

    try:
        hints: dict[str, object] = get_type_hints(cls, include_extras=True)
    except Exception as exc:
        # Fallback for when `get_type_hints` somehow fails on foreign classes
        if not strict:
            logger.debug("Skipping wiring of `%s`: %s", cls.__qualname__, exc)
            return ()
        raise DiInvalidWireTargetShapeError(
            f"Annotations of `{cls.__qualname__}` can not be evaluated",
            cause=exc,
            service="Wirer",
        ) from exc

    bindings: list[FieldBinding] = []
    for attr, annotation in hints.items():
        if marker_of(annotation) is None:
            continue
        bindings.append(
            FieldBinding(
                owner=cls.__qualname__, attr=attr, dependency=dependency_of(annotation)
            )
        )

    table: tuple[FieldBinding, ...] = tuple(bindings)
    _bindings[cls] = table
    return table


# =====================================================================================
#   Hooks
# =====================================================================================


class AfterWire(ABC):
    """
    Capability of objects that want to run once all of their fields are wired.

    The returned cleanup joins the wiring call's cleanup. Raising aborts the wiring
    call and rolls back what was acquired.
    """

    @abstractmethod
    def after_wire(self) -> Cleanup | None:
        pass
