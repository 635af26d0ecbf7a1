from ._sentinels import Placeholder
from .cleanup import CleanupChain
from .containers import Container
from .exceptions import (
    DiCallableError,
    DiCircularDependencyError,
    DiContainerError,
    DiDependencyError,
    DiError,
    DiInvalidProviderShapeError,
    DiInvalidWireTargetShapeError,
    DiMultipleProvidersFoundError,
    DiProviderAlreadyExistsError,
    DiProviderNotFoundError,
    DiValidationError,
)
from .markers import AfterWire, Inject
from .types import Cleanup, Lifetime, Named

__all__ = [
    # Containers
    "Container",
    # Wiring
    "AfterWire",
    "Cleanup",
    "CleanupChain",
    "Inject",
    "Lifetime",
    "Named",
    "Placeholder",
    # Exceptions
    "DiCallableError",
    "DiCircularDependencyError",
    "DiContainerError",
    "DiDependencyError",
    "DiError",
    "DiInvalidProviderShapeError",
    "DiInvalidWireTargetShapeError",
    "DiMultipleProvidersFoundError",
    "DiProviderAlreadyExistsError",
    "DiProviderNotFoundError",
    "DiValidationError",
]
