"""Test configuration and fixtures."""

import os

import pytest

from image_flattener.layers.store import LayerStore


@pytest.fixture
def graph_root(tmp_path):
    """Empty layer graph storage."""
    root = tmp_path / "graph"
    root.mkdir()
    return root


@pytest.fixture
def scratch_root(tmp_path):
    """Directory for scratch trees."""
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def layer_store(graph_root):
    """LayerStore backed by the temporary graph storage."""
    return LayerStore(graph_root)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring docker"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a runtime is declared available."""
    skip_integration = pytest.mark.skip(reason="Docker not available")

    for item in items:
        if (
            "integration" in item.keywords
            and os.getenv("DOCKER_AVAILABLE", "false").lower() != "true"
        ):
            item.add_marker(skip_integration)
