from __future__ import annotations

from typing import Final, NoReturn, final, override


class _Marker:
    """Stand-in values with no truth value, shown by label."""

    __slots__ = ("_label",)

    def __init__(self, label: str) -> None:
        self._label: str = label

    def __bool__(self) -> NoReturn:
        raise TypeError(f"{self!r} has no truth value")

    @override
    def __repr__(self) -> str:
        return f"<{self._label}>"


@final
class UnsetType(_Marker):
    """Type of `UNSET`, the value of a singleton slot that caches nothing yet."""

    __slots__ = ()

    def __copy__(self) -> UnsetType:
        return self

    def __deepcopy__(self, memo: dict[int, object]) -> UnsetType:
        return self


UNSET: Final[UnsetType] = UnsetType("UNSET")


@final
class Placeholder(_Marker):
    """
    Value handed out by dry runs when the produced type can not be allocated
    without running user code (capabilities, generic aliases, builtins whose
    `__new__` needs arguments).
    """

    __slots__ = ("produced",)

    def __init__(self, produced: object) -> None:
        label: str = produced.__qualname__ if isinstance(produced, type) else repr(produced)
        super().__init__(f"Placeholder[{label}]")
        self.produced: object = produced

    @override
    def __eq__(self, other: object) -> bool:
        return isinstance(other, Placeholder) and other.produced == self.produced

    @override
    def __hash__(self) -> int:
        return hash((Placeholder, self.produced))
