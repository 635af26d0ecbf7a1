import inspect
import logging
from collections.abc import Callable, Generator, Iterable, Iterator, Mapping
from typing import Annotated, get_args, get_origin

from .exceptions import (
    DiContainerError,
    DiInvalidProviderShapeError,
    DiProviderAlreadyExistsError,
)
from .lifetimes import ProviderDescriptor
from .markers import ParameterBinding, hints_of, parameters_of
from .types import Lifetime, Shape

logger = logging.getLogger(__name__)

_GENERATOR_ORIGINS: tuple[object, ...] = (Iterator, Generator, Iterable)


# =====================================================================================
#   Capabilities
# =====================================================================================


def is_protocol(tp: object, /) -> bool:
    return isinstance(tp, type) and bool(getattr(tp, "_is_protocol", False))


def is_capability(tp: object, /) -> bool:
    """A capability is a protocol or an abstract class, it is never produced as-is."""

    return isinstance(tp, type) and (is_protocol(tp) or inspect.isabstract(tp))


def satisfies(produced: object, capability: object, /) -> bool:
    """
    Whether a produced type can stand in for `capability`.

    Matching is nominal: equality, subclassing, or `ABC.register`. Protocols only
    match types that list them in their MRO, never by shape.
    """

    if produced == capability:
        return True
    if not isinstance(produced, type) or not is_capability(capability):
        return False
    if is_protocol(capability):
        return capability in produced.__mro__
    return issubclass(produced, capability)  # pyright: ignore[reportArgumentType]


# =====================================================================================
#   Registry
# =====================================================================================


class Registry:
    """
    Provider descriptors in two key spaces: by name, and by produced type for
    unnamed registrations. Keys are unique and entries are never removed.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, ProviderDescriptor] = {}
        self._by_type: dict[object, ProviderDescriptor] = {}

    def __len__(self) -> int:
        return len(self._by_name) + len(self._by_type)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in self._by_name
        return bool(self.matching(key))

    # ----------------------------------------------------------------------------------
    #   Registering
    # ----------------------------------------------------------------------------------

    def add_named(self, providers: Mapping[str, object], /, transient: bool) -> None:
        """
        Register every `name -> provider` pair, or none of them.

        Raises:
            * `DiContainerError`: If a name is empty
            * `DiInvalidProviderShapeError`: If a factory has an unsupported shape
            * `DiProviderAlreadyExistsError`: If a name is already registered
        """

        staged: dict[str, ProviderDescriptor] = {}
        for name, provider in providers.items():
            if not isinstance(name, str) or not name.strip():  # pyright: ignore[reportUnnecessaryIsInstance]
                raise DiContainerError(
                    f"Provider name must be a non-empty string, got `{name!r}`",
                    service=self.__class__.__name__,
                )
            if name in self._by_name:
                raise DiProviderAlreadyExistsError(
                    f"A provider named `{name}` is already registered",
                    service=self.__class__.__name__,
                )
            staged[name] = describe(provider, transient=transient, name=name)

        for name, descriptor in staged.items():
            self._by_name[name] = descriptor
            logger.debug("Registered provider `%s`", descriptor.label)

    def add_typed(self, providers: Iterable[object], /, transient: bool) -> None:
        """
        Register every provider under its produced type, or none of them.

        Raises:
            * `DiInvalidProviderShapeError`: If a factory has an unsupported shape
            * `DiProviderAlreadyExistsError`: If a produced type is already registered
        """

        staged: dict[object, ProviderDescriptor] = {}
        for provider in providers:
            descriptor: ProviderDescriptor = describe(provider, transient=transient)
            if descriptor.produced in self._by_type or descriptor.produced in staged:
                raise DiProviderAlreadyExistsError(
                    f"A provider for type `{descriptor.label}` is already registered",
                    service=self.__class__.__name__,
                )
            staged[descriptor.produced] = descriptor

        for produced, descriptor in staged.items():
            self._by_type[produced] = descriptor
            logger.debug("Registered provider for type `%s`", descriptor.label)

    # ----------------------------------------------------------------------------------
    #   Lookup
    # ----------------------------------------------------------------------------------

    def by_name(self, name: str, /) -> ProviderDescriptor | None:
        return self._by_name.get(name)

    def matching(self, tp: object, /) -> list[ProviderDescriptor]:
        """
        Type-keyed descriptors answering a request for `tp`: the exact entry for a
        concrete type, or every entry satisfying `tp` when it is a capability.
        """

        if not is_capability(tp):
            direct: ProviderDescriptor | None = self._by_type.get(tp)
            return [direct] if direct is not None else []

        return [
            descriptor
            for produced, descriptor in self._by_type.items()
            if satisfies(produced, tp)
        ]

    def named_matching(self, element: object, /) -> dict[str, ProviderDescriptor]:
        """Named descriptors whose produced type equals or satisfies `element`."""

        return {
            name: descriptor
            for name, descriptor in self._by_name.items()
            if satisfies(descriptor.produced, element)
        }

    def descriptors(self) -> list[ProviderDescriptor]:
        """Every descriptor, named ones first, each in registration order."""

        return [*self._by_name.values(), *self._by_type.values()]


# =====================================================================================
#   Descriptors
# =====================================================================================


def describe(
    provider: object, /, transient: bool, name: str | None = None
) -> ProviderDescriptor:
    """
    Build the descriptor of a value or a factory.

    Classes and functions are factories, anything else is a value whose produced type
    is its own type.

    Raises:
        * `DiInvalidProviderShapeError`: If the factory shape is not supported
    """

    lifetime: Lifetime = "transient" if transient else "singleton"

    if inspect.isclass(provider):
        return _describe_class(provider, lifetime=lifetime, name=name)

    if inspect.isfunction(provider) or inspect.ismethod(provider):
        return _describe_function(provider, lifetime=lifetime, name=name)

    def value() -> object:
        return provider

    return ProviderDescriptor(
        factory=value,
        produced=type(provider),
        lifetime=lifetime,
        name=name,
    )


def _initializer_of(cls: type[object], /) -> object | None:
    """
    First `__init__` defined along the MRO, skipping the placeholder that
    `typing.Protocol` installs on its subclasses.
    """

    for base in cls.__mro__:
        if base is object:
            return None
        init: object | None = base.__dict__.get("__init__")
        if init is None:
            continue
        if getattr(init, "__name__", None) == "_no_init_or_replace_init":
            continue
        return init
    return None


def _describe_class(
    cls: type[object], /, lifetime: Lifetime, name: str | None
) -> ProviderDescriptor:
    if is_capability(cls):
        raise DiInvalidProviderShapeError(
            f"`{cls.__qualname__}` is abstract and can not be used as a factory",
            service="Registry",
        )

    init: object | None = _initializer_of(cls)
    parameters: tuple[ParameterBinding, ...]
    if inspect.isfunction(init):
        parameters = parameters_of(
            init,
            error=DiInvalidProviderShapeError,
            hints=hints_of(init, error=DiInvalidProviderShapeError),
            skip_self=True,
        )
    elif init is None and not inspect.isfunction(cls.__new__):
        # Neither `__init__` nor `__new__` is user code: built without arguments
        parameters = ()
    else:
        source: Callable[..., object] = cls.__new__ if init is None else cls.__init__
        parameters = parameters_of(
            cls,
            error=DiInvalidProviderShapeError,
            hints=hints_of(source, error=DiInvalidProviderShapeError),
        )

    return ProviderDescriptor(
        factory=cls,
        produced=cls,
        lifetime=lifetime,
        name=name,
        parameters=parameters,
    )


def _describe_function(
    func: Callable[..., object], /, lifetime: Lifetime, name: str | None
) -> ProviderDescriptor:
    qualname: str = func.__qualname__
    if func.__name__ == "<lambda>":
        raise DiInvalidProviderShapeError(
            "`Lambda` is not supported as it has no return annotation."
            + " Please use a named function",
            service="Registry",
        )

    if inspect.iscoroutinefunction(func) or inspect.isasyncgenfunction(func):
        raise DiInvalidProviderShapeError(
            f"Factory `{qualname}` is asynchronous, only synchronous factories"
            + " are supported",
            service="Registry",
        )

    hints: dict[str, object] = hints_of(func, error=DiInvalidProviderShapeError)
    if "return" not in hints:
        raise DiInvalidProviderShapeError(
            f"Factory `{qualname}` must declare its return type", service="Registry"
        )

    produced, shape = _produced_by(hints["return"], func=func)
    parameters: tuple[ParameterBinding, ...] = parameters_of(
        func, error=DiInvalidProviderShapeError, hints=hints
    )
    return ProviderDescriptor(
        factory=func,
        produced=produced,
        lifetime=lifetime,
        shape=shape,
        name=name,
        parameters=parameters,
    )


def _produced_by(annotation: object, /, func: Callable[..., object]) -> tuple[object, Shape]:
    """
    Derive the produced type and shape from a factory's return annotation.

    Raises:
        * `DiInvalidProviderShapeError`: If the annotation is not a supported shape
    """

    qualname: str = func.__qualname__
    if get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]

    if annotation is None or annotation is type(None):
        raise DiInvalidProviderShapeError(
            f"Factory `{qualname}` returns `None`, it must return a value",
            service="Registry",
        )

    origin: object | None = get_origin(annotation)
    args: tuple[object, ...] = get_args(annotation)

    if inspect.isgeneratorfunction(func):
        if origin not in _GENERATOR_ORIGINS or not args:
            raise DiInvalidProviderShapeError(
                f"Generator factory `{qualname}` must be annotated as"
                + " `Iterator[T]` or `Generator[T, None, None]`",
                service="Registry",
            )
        return args[0], "generator"

    if origin is tuple:
        if len(args) == 2 and get_origin(args[1]) is Callable:
            return args[0], "pair"
        raise DiInvalidProviderShapeError(
            f"Factory `{qualname}` returns `{annotation!s}`; a tuple return must be"
            + " `tuple[T, Cleanup]`",
            service="Registry",
        )

    return annotation, "value"
