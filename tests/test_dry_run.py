from collections.abc import Iterator
from typing import Annotated, Self
from unittest.mock import Mock

import pytest

from wirebox import (
    AfterWire,
    Cleanup,
    Container,
    DiInvalidWireTargetShapeError,
    DiMultipleProvidersFoundError,
    DiProviderNotFoundError,
    DiValidationError,
    Inject,
    Placeholder,
)

from ._classes import (
    Cache,
    Config,
    Database,
    InMemoryRepository,
    IRepository,
    ReportJob,
    SQLRepository,
    UserService,
)


def test_dry_run_never_calls_factories(container: Container) -> None:
    """Test producers only run on a real wiring call, once for a singleton."""

    calls: Mock = Mock()

    def create_cache() -> Cache:
        calls()
        return Cache()

    class Handler:
        cache: Annotated[Cache, Inject()]

    container.register_type(create_cache)

    for _ in range(3):
        _ = container.dry_run(Handler())
    assert calls.call_count == 0

    _ = container.wire(Handler())
    assert calls.call_count == 1

    _ = container.wire(Handler())
    assert calls.call_count == 1


def test_dry_run_does_not_fill_the_cache(container: Container) -> None:
    """Test a dry run leaves singletons uncreated."""

    container.register_type(Config)

    placeholder, _ = container.resolve_by_type(Config, dry_run=True)
    real1, _ = container.resolve_by_type(Config)
    real2, _ = container.resolve_by_type(Config)

    assert placeholder is not real1
    assert real1 is real2


def test_dry_run_leaves_fields_unset(container: Container) -> None:
    """Test fields are not assigned during a dry run."""

    container.register_type(Config, Database, SQLRepository, Cache)

    job: ReportJob = ReportJob()
    cleanup: Cleanup = container.dry_run(job)
    cleanup()

    assert not hasattr(job, "repository")
    assert not hasattr(job, "cache")


def test_dry_run_does_not_call_function(container: Container) -> None:
    """Test wired functions are not invoked during a dry run."""

    run: Mock = Mock()

    def handler(config: Config) -> None:
        run(config)

    container.register_type(Config)

    _ = container.dry_run(handler)

    run.assert_not_called()


def test_dry_run_skips_hooks_and_generators(container: Container) -> None:
    """Test neither `after_wire` nor generator bodies run during a dry run."""

    events: list[str] = []

    def open_cache() -> Iterator[Cache]:
        events.append("open")
        yield Cache()
        events.append("close")

    class Handler(AfterWire):
        cache: Annotated[Cache, Inject()]

        def after_wire(self) -> Cleanup | None:
            events.append("after_wire")
            return None

    container.register_type(open_cache)

    _ = container.dry_run(Handler())

    assert events == []


def test_dry_run_placeholders(container: Container) -> None:
    """Test placeholders are bare instances of the produced type where possible."""

    def create_ids() -> list[int]:
        return [1, 2, 3]

    container.register_type(Config, Database, create_ids)
    container.register_named("count", 5)

    db, _ = container.resolve_by_type(Database, dry_run=True)
    ids, _ = container.resolve_by_type(list[int], dry_run=True)
    count, _ = container.resolve_by_name("count", dry_run=True)

    # Factories did not run, so their attributes were never set
    assert isinstance(db, Database)
    assert not hasattr(db, "config")
    assert ids == Placeholder(list[int])
    assert count == 0


def test_dry_run_skips_custom_allocators(container: Container) -> None:
    """Test a class defining its own `__new__` gets a `Placeholder` in dry runs."""

    allocations: Mock = Mock()

    class Pooled:
        def __new__(cls) -> Self:
            allocations()
            return super().__new__(cls)

    class Handler:
        pooled: Annotated[Pooled, Inject()]

    container.register_type(Pooled)

    for _ in range(3):
        _ = container.dry_run(Handler())
    pooled, _ = container.resolve_by_type(Pooled, dry_run=True)

    assert allocations.call_count == 0
    assert pooled == Placeholder(Pooled)


def test_dry_run_ignores_factory_errors(container: Container) -> None:
    """Test errors from factory bodies can not surface as the bodies never run."""

    def create_config() -> Config:
        raise RuntimeError("I am grumpy")

    container.register_type(create_config)

    _ = container.resolve_by_type(Config, dry_run=True)


# =====================================================================================
#   Structural errors
# =====================================================================================


def test_dry_run_missing_provider(container: Container) -> None:
    """Test a dry run reports missing providers like a real call."""

    container.register_type(SQLRepository, Cache)

    with pytest.raises(DiProviderNotFoundError, match="SQLRepository"):
        _ = container.dry_run(ReportJob())


def test_dry_run_ambiguous_capability(container: Container) -> None:
    """Test a dry run reports ambiguous capabilities like a real call."""

    container.register_type(Config, Database, SQLRepository, InMemoryRepository, Cache)

    with pytest.raises(DiMultipleProvidersFoundError):
        _ = container.dry_run(ReportJob())


def test_dry_run_invalid_function_shape(container: Container) -> None:
    """Test a dry run reports invalid function shapes like a real call."""

    container.register_type(Config)

    def handler(config: Config) -> Config:
        return config

    with pytest.raises(DiInvalidWireTargetShapeError):
        _ = container.dry_run(handler)


def test_dry_run_unwritable_field(container: Container) -> None:
    """Test a dry run reports fields a real call could not assign."""

    class Handler:
        _config: Annotated[Config, Inject()]

    container.register_type(Config)

    with pytest.raises(DiInvalidWireTargetShapeError):
        _ = container.dry_run(Handler())


# =====================================================================================
#   Validation
# =====================================================================================


def test_validate_success(container: Container) -> None:
    """Test validation passes for a complete configuration without instantiating."""

    calls: Mock = Mock()

    def create_config() -> Config:
        calls()
        return Config()

    container.register_type(create_config, Database, Cache, UserService)
    container.register_named("repository", InMemoryRepository)

    container.validate()

    calls.assert_not_called()


def test_validate_collects_every_error(container: Container) -> None:
    """Test validation reports all broken registrations at once."""

    container.register_type(UserService)
    container.register_named("repository", SQLRepository)

    with pytest.raises(DiValidationError, match="Errors raised") as exc_info:
        container.validate()

    errors: object = exc_info.value.context["errors"]
    assert isinstance(errors, list)
    assert len(errors) == 2  # pyright: ignore[reportUnknownArgumentType]


def test_validate_reports_ambiguity(container: Container) -> None:
    """Test validation reports capabilities matched by several providers."""

    class Reporter:
        def __init__(self, repository: IRepository) -> None:
            self.repository: IRepository = repository

    container.register_type(InMemoryRepository, Reporter)
    container.register_named("sql", SQLRepository)
    container.register_type(Config, Database)
    container.validate()

    class SecondRepository(IRepository):
        def save(self, data: str) -> None:
            pass

    container.register_type(SecondRepository)

    with pytest.raises(DiValidationError, match="Multiple providers"):
        container.validate()
