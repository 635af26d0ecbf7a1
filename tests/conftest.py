from collections.abc import Generator

import pytest

from wirebox import Container


@pytest.fixture
def container() -> Generator[Container, None]:
    container: Container = Container()
    yield container
    container.teardown()


@pytest.fixture
def lenient_container() -> Generator[Container, None]:
    container: Container = Container(allow_private_writes=True)
    yield container
    container.teardown()

