from typing import Any, Generator
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def mock_client() -> Generator[Any, None, None]:
    client = MagicMock()
    container = MagicMock()
    container.id = "abc123def456"
    container.short_id = "abc123"
    container.wait.return_value = {"StatusCode": 0}
    client.containers.create.return_value = container

    response = MagicMock()
    response.content = b""
    client.api._get.return_value = response
    client.api._raise_for_status.return_value = None
    yield client


@pytest.fixture
def mock_container(mock_client: Any) -> Any:
    return mock_client.containers.create.return_value
