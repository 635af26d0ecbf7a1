import json
from typing import ClassVar, Literal, TypeAlias, override

# ======================================================================================
#   Codes
# ======================================================================================

# fmt: off
Layer: TypeAlias = Literal[ # "Which part of the container failed?"
    "CONTAINER",    # Registration and wire target checks
    "DEPENDENCY",   # The dependency graph: missing, ambiguous or cyclic
    "CALLABLE",     # User code: factories, wired functions, hooks and cleanups
    "UNKNOWN",
]

Category: TypeAlias = Literal[ # "What went wrong?"
    "MISSING",      # Nothing matched a request
    "AMBIGUOUS",    # More than one candidate matched a request
    "CONFLICT",     # A key is already taken
    "SHAPE",        # A factory, field or function can not be used as declared
    "CYCLE",        # A provider depends on itself
    "USAGE",        # Improper container usage
    "UNEXPECTED",   # User code raised
    "UNKNOWN",
]

Severity: TypeAlias = Literal["WARNING", "ERROR", "CRITICAL"]
# fmt: on


# ======================================================================================
#   Base
# ======================================================================================


class DiError(Exception):
    """
    Base of every error raised by the container.

    Errors are told apart by class, and each carries a code of the form
    `LAYER::SERVICE::CATEGORY::SEVERITY[::RECOVERABLE]` for logs and reports.
    """

    layer: ClassVar[Layer] = "UNKNOWN"
    category: ClassVar[Category] = "UNKNOWN"
    severity: ClassVar[Severity] = "ERROR"
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        /,
        cause: BaseException | None = None,
        *,
        context: dict[str, object] | None = None,
        service: str = "unknown",
        recoverable: bool | None = None,
    ) -> None:
        self.msg: str = message.strip()
        self.service: str = service.strip().upper()
        if recoverable is not None:
            self.recoverable = recoverable
        self._ctx: dict[str, object] = dict(context or {})

        super().__init__(self.msg)
        if cause is not None:
            self.__cause__ = cause

    @property
    def code(self) -> str:
        parts: list[str] = [self.layer, self.service, self.category, self.severity]
        if self.recoverable:
            parts.append("RECOVERABLE")
        return "::".join(parts)

    @property
    def msg_code(self) -> str:
        return f"{self.msg} >> {self.code}"

    @property
    def context(self) -> dict[str, object]:
        """Structured details of the failure, such as the resolution trail."""

        return dict(self._ctx)

    @override
    def __str__(self) -> str:
        return self.msg_code

    @override
    def __repr__(self) -> str:
        json_context: str = json.dumps(obj=self._ctx, default=str)
        return f"{self.__class__.__name__}({self.msg_code!r}, context={json_context})"


# ======================================================================================
#   Container
# ======================================================================================


class DiContainerError(DiError):
    layer = "CONTAINER"
    category = "USAGE"
    severity = "CRITICAL"


class DiProviderAlreadyExistsError(DiContainerError):
    """A name or produced type is already taken by another provider."""

    category = "CONFLICT"


class DiInvalidProviderShapeError(DiContainerError):
    """A provider's factory signature is not one the container can call."""

    category = "SHAPE"


class DiInvalidWireTargetShapeError(DiContainerError):
    """A wire target (object, field, marker or function) can not be wired."""

    category = "SHAPE"


class DiValidationError(DiContainerError):
    """One or more registrations failed a dry-run resolution."""


# ======================================================================================
#   Dependency
# ======================================================================================


class DiDependencyError(DiError):
    layer = "DEPENDENCY"
    category = "MISSING"
    severity = "CRITICAL"


class DiProviderNotFoundError(DiDependencyError):
    """No provider matches the requested name, type or capability."""


class DiMultipleProvidersFoundError(DiDependencyError):
    """A capability is satisfied by more than one type-keyed provider."""

    category = "AMBIGUOUS"


class DiCircularDependencyError(DiDependencyError):
    category = "CYCLE"


# ======================================================================================
#   Callable
# ======================================================================================


class DiCallableError(DiError):
    """A factory, wired function, `after_wire` hook or cleanup raised."""

    layer = "CALLABLE"
    category = "UNEXPECTED"
