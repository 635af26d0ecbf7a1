from collections.abc import Callable
from types import TracebackType
from typing import Literal, NewType, TypeAlias, TypeVar

T = TypeVar(name="T")

Cleanup: TypeAlias = Callable[[], None]
FactoryType: TypeAlias = Callable[..., T]

Named = NewType("Named", str)
"""Key type of a named collection: `dict[Named, T]` maps provider names to instances."""

Lifetime: TypeAlias = Literal[
    "singleton",
    "transient",
]
"""Dependency lifetime strategies."""

Shape: TypeAlias = Literal[
    "value",  # `() -> T` or a registered value
    "pair",  # `() -> tuple[T, Cleanup]`
    "generator",  # `() -> Iterator[T]`, code after `yield` is the cleanup
]
"""How a factory reports its value and cleanup."""

# ======================================================================================
#   Generic
# ======================================================================================

ExcType: TypeAlias = type[BaseException] | None
ExcValue: TypeAlias = BaseException | None
ExcTraceback: TypeAlias = TracebackType | None
