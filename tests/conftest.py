"""Shared pytest fixtures for Fincas tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from fincas.tasks.client import TasksClient, set_tasks_client  # noqa: E402


@pytest.fixture(autouse=True)
def inline_tasks():
    """Fresh inline tasks client per test; yields it for assertions."""
    client = TasksClient(backend="inline")
    set_tasks_client(client)
    yield client
    set_tasks_client(None)
