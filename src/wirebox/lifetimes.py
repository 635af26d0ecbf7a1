import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import override

from ._sentinels import UNSET, UnsetType
from .cleanup import noop, once
from .markers import ParameterBinding
from .types import Cleanup, FactoryType, Lifetime, Shape

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ProviderDescriptor:
    """Metadata for a registered provider."""

    factory: FactoryType[object]
    produced: object
    lifetime: Lifetime
    shape: Shape = "value"
    name: str | None = None
    parameters: tuple[ParameterBinding, ...] = ()
    instance: object = field(default=UNSET, repr=False)
    cleanup: Cleanup = field(default=noop, repr=False)

    @property
    def label(self) -> str:
        produced: str = getattr(self.produced, "__qualname__", repr(self.produced))
        if self.name is None:
            return produced
        return f"{self.name}({produced})"

    def is_cached(self) -> bool:
        return not isinstance(self.instance, UnsetType)

    def store(self, instance: object, cleanup: Cleanup) -> None:
        self.instance = instance
        self.cleanup = cleanup

    def forget(self) -> None:
        """Drop the cached instance without releasing it."""

        self.instance = UNSET
        self.cleanup = noop

    def teardown(self) -> None:
        """Release the cached instance and clear the cache. Registration remains."""

        if not self.is_cached():
            return
        cleanup: Cleanup = self.cleanup
        self.forget()
        logger.debug("Tearing down `%s`", self.label)
        cleanup()


@dataclass(frozen=True, slots=True)
class Resolution:
    """A resolved value with the cleanup the caller now shares."""

    value: object
    cleanup: Cleanup = noop
    undo: Cleanup | None = None
    """Rollback for resources created by this resolution; `None` if nothing is new."""


# =====================================================================================
#   Strategies
# =====================================================================================


class LifetimeStrategy(ABC):
    """Base strategy for dependency lifetime management."""

    @abstractmethod
    def resolve(
        self,
        descriptor: ProviderDescriptor,
        build: Callable[[], Resolution],
    ) -> Resolution:
        """Resolve dependency according to lifetime strategy."""

        pass


class SingletonStrategy(LifetimeStrategy):
    """Singleton lifetime allows one instance per container, until teardown."""

    def __init__(self) -> None:
        self.created: list[ProviderDescriptor] = []
        """Descriptors in the order their instances were cached."""

    @override
    def resolve(
        self,
        descriptor: ProviderDescriptor,
        build: Callable[[], Resolution],
    ) -> Resolution:
        if descriptor.is_cached():
            logger.debug("Reusing cached `%s`", descriptor.label)
            return Resolution(value=descriptor.instance, cleanup=descriptor.cleanup)

        resolution: Resolution = build()
        cleanup: Cleanup = once(resolution.cleanup)
        descriptor.store(resolution.value, cleanup)
        self.created.append(descriptor)

        release: Cleanup | None = resolution.undo

        def evict() -> None:
            descriptor.forget()
            if descriptor in self.created:
                self.created.remove(descriptor)
            if release is not None:
                release()

        return Resolution(value=resolution.value, cleanup=cleanup, undo=evict)


class TransientStrategy(LifetimeStrategy):
    """Transient lifetime means new instance per resolve, nothing is cached."""

    @override
    def resolve(
        self,
        descriptor: ProviderDescriptor,
        build: Callable[[], Resolution],
    ) -> Resolution:
        return build()
