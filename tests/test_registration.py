from collections.abc import AsyncIterator, Callable, Iterator

import pytest

from wirebox import (
    Cleanup,
    Container,
    DiContainerError,
    DiInvalidProviderShapeError,
    DiProviderAlreadyExistsError,
    DiProviderNotFoundError,
)

from ._classes import Cache, Config, Database, IRepository, Notifier


def test_register_named_value(container: Container) -> None:
    """Test registering a plain value under a name."""

    container.register_named("count", 5)

    value, _ = container.resolve_by_name("count")

    assert value == 5
    assert container.is_registered("count")


def test_register_type_by_class(container: Container) -> None:
    """Test a class is its own factory and produced type."""

    container.register_type(Config)

    config, _ = container.resolve_by_type(Config)

    assert isinstance(config, Config)
    assert container.is_registered(Config)


def test_register_protocol_implementer_without_initializer(
    container: Container,
) -> None:
    """Test a class inheriting only a protocol's `__init__` is built without arguments."""

    class NullRepository(IRepository):
        def save(self, data: str) -> None:
            pass

    container.register_type(NullRepository)

    repository, _ = container.resolve_by_type(IRepository)

    assert isinstance(repository, NullRepository)


def test_register_class_with_inherited_initializer(container: Container) -> None:
    """Test a subclass without `__init__` is wired through its base's parameters."""

    class ReplicaDatabase(Database):
        pass

    container.register_type(Config, ReplicaDatabase)

    replica, _ = container.resolve_by_type(ReplicaDatabase)

    assert isinstance(replica.config, Config)


def test_register_type_by_factory_return_annotation(container: Container) -> None:
    """Test the produced type of a factory comes from its return annotation."""

    def create_cache() -> Cache:
        return Cache()

    container.register_type(create_cache)

    assert container.is_registered(Cache)
    assert not container.is_registered(type(create_cache))


def test_register_type_by_value(container: Container) -> None:
    """Test the produced type of a value is its own type."""

    config: Config = Config()
    container.register_type(config)

    resolved, _ = container.resolve_by_type(Config)

    assert resolved is config


def test_register_type_bulk(container: Container) -> None:
    """Test bulk registration by type."""

    container.register_type(Config, Cache, Database)

    assert len(container) == 3
    db, _ = container.resolve_by_type(Database)
    assert isinstance(db.config, Config)


def test_register_named_many(container: Container) -> None:
    """Test bulk registration by name."""

    container.register_named_many({"host": "localhost", "port": 5432})

    host, _ = container.resolve_by_name("host")
    port, _ = container.resolve_by_name("port")

    assert host == "localhost"
    assert port == 5432


def test_supported_factory_shapes(container: Container) -> None:
    """Test value, `(value, cleanup)` and generator factories are accepted."""

    def plain() -> Config:
        return Config()

    def pair() -> tuple[Cache, Cleanup]:
        return Cache(), lambda: None

    def generator() -> Iterator[str]:
        yield "value"

    container.register_named("plain", plain)
    container.register_named("pair", pair)
    container.register_named("generator", generator)

    assert isinstance(container.resolve_by_name("plain")[0], Config)
    assert isinstance(container.resolve_by_name("pair")[0], Cache)
    assert container.resolve_by_name("generator")[0] == "value"


# =====================================================================================
#   Duplicates
# =====================================================================================


def test_duplicate_name_is_rejected(container: Container) -> None:
    """Test re-registering a name fails and keeps the original registration."""

    container.register_named("count", 5)

    with pytest.raises(DiProviderAlreadyExistsError, match="`count`"):
        container.register_named("count", 6)

    value, _ = container.resolve_by_name("count")
    assert value == 5


def test_duplicate_type_is_rejected(container: Container) -> None:
    """Test two unnamed providers of the same type are rejected."""

    def create_config() -> Config:
        return Config()

    container.register_type(Config)

    with pytest.raises(DiProviderAlreadyExistsError):
        container.register_type(create_config)


def test_same_type_under_different_names(container: Container) -> None:
    """Test named providers of one type do not collide with each other."""

    container.register_named("primary", Config)
    container.register_named("replica", Config)
    container.register_type(Config)

    primary, _ = container.resolve_by_name("primary")
    replica, _ = container.resolve_by_name("replica")

    assert primary is not replica


def test_bulk_named_registration_is_atomic(container: Container) -> None:
    """Test a failing bulk registration leaves nothing registered."""

    container.register_named("taken", 1)

    with pytest.raises(DiProviderAlreadyExistsError):
        container.register_named_many({"fresh": 2, "taken": 3})

    assert not container.is_registered("fresh")
    assert container.resolve_by_name("taken")[0] == 1


def test_bulk_type_registration_is_atomic(container: Container) -> None:
    """Test duplicates inside one batch are rejected before anything registers."""

    def create_config() -> Config:
        return Config()

    with pytest.raises(DiProviderAlreadyExistsError):
        container.register_type(Cache, Config, create_config)

    assert len(container) == 0
    with pytest.raises(DiProviderNotFoundError):
        _ = container.resolve_by_type(Cache)


def test_empty_name_is_rejected(container: Container) -> None:
    """Test named registration requires a non-empty name."""

    with pytest.raises(DiContainerError, match="non-empty"):
        container.register_named("", 5)


# =====================================================================================
#   Shapes
# =====================================================================================


def test_lambda_is_rejected(container: Container) -> None:
    """Test lambdas are rejected as they can not declare a return type."""

    with pytest.raises(DiInvalidProviderShapeError, match="Lambda"):
        container.register_named("config", lambda: Config())


def test_missing_return_annotation_is_rejected(container: Container) -> None:
    """Test factories must declare what they produce."""

    def create_config():  # pyright: ignore[reportMissingParameterType]
        return Config()

    with pytest.raises(DiInvalidProviderShapeError, match="return type"):
        container.register_type(create_config)


def test_none_return_is_rejected(container: Container) -> None:
    """Test factories returning `None` are rejected."""

    def setup() -> None:
        pass

    with pytest.raises(DiInvalidProviderShapeError, match="returns `None`"):
        container.register_named("setup", setup)


def test_wrong_tuple_shape_is_rejected(container: Container) -> None:
    """Test tuple returns must be exactly `(value, cleanup)`."""

    def two_values() -> tuple[Config, Cache]:
        return Config(), Cache()

    def three_values() -> tuple[Config, Cleanup, Cleanup]:
        return Config(), lambda: None, lambda: None

    with pytest.raises(DiInvalidProviderShapeError):
        container.register_named("two", two_values)
    with pytest.raises(DiInvalidProviderShapeError):
        container.register_named("three", three_values)


async def _create_config_async() -> Config:
    return Config()


async def _stream_configs() -> AsyncIterator[Config]:
    yield Config()


@pytest.mark.parametrize("factory", [_create_config_async, _stream_configs])
def test_async_factories_are_rejected(
    container: Container, factory: Callable[[], object]
) -> None:
    """Test coroutine and async generator factories are rejected at registration."""

    with pytest.raises(DiInvalidProviderShapeError, match="asynchronous"):
        container.register_type(factory)

    assert not container.is_registered(Config)


def test_variadic_parameters_are_rejected(container: Container) -> None:
    """Test factories with `*args`/`**kwargs` are rejected."""

    def create_config(*args: object) -> Config:
        return Config()

    with pytest.raises(DiInvalidProviderShapeError, match="variadic"):
        container.register_type(create_config)


def test_unannotated_parameter_is_rejected(container: Container) -> None:
    """Test factory parameters need a type hint or a default."""

    def create_database(config) -> Database:  # pyright: ignore[reportMissingParameterType]
        return Database(config)  # pyright: ignore[reportUnknownArgumentType]

    with pytest.raises(DiInvalidProviderShapeError, match="no type hint"):
        container.register_type(create_database)


def test_abstract_class_is_rejected(container: Container) -> None:
    """Test capabilities can not be registered as factories."""

    with pytest.raises(DiInvalidProviderShapeError, match="abstract"):
        container.register_type(Notifier)


def test_failed_registration_keeps_prior_state(container: Container) -> None:
    """Test a shape error does not disturb existing registrations."""

    container.register_type(Config)

    def broken(*args: object) -> Cache:
        return Cache()

    with pytest.raises(DiInvalidProviderShapeError):
        container.register_type(broken)

    assert len(container) == 1
    assert container.is_registered(Config)
    assert not container.is_registered(Cache)
