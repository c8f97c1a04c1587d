"""Shared fixtures."""
import pytest

from autoflow.config import Settings
from autoflow.engine import AdditionalData, EventService, WorkflowExecutor
from autoflow.nodes import get_node_types


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        binary_data_storage_path=str(tmp_path / "binary"),
    )


@pytest.fixture
def node_types():
    return get_node_types()


@pytest.fixture
def events():
    return EventService()


@pytest.fixture
def additional_data(settings, events):
    return AdditionalData(settings=settings, events=events)


@pytest.fixture
def executor(node_types, additional_data):
    return WorkflowExecutor(node_types, additional_data)
