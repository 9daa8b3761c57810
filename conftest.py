"""
Pytest configuration for cloudsignage tests.

Provides:
- @pytest.mark.network marker for tests that reach real services
- Auto-skip of network tests unless CLOUDSIGNAGE_NETWORK_TESTS=1
"""

import os

import pytest

NETWORK_TESTS_ENABLED = os.environ.get("CLOUDSIGNAGE_NETWORK_TESTS") == "1"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "network: marks tests as requiring network access (skipped by default)"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-skip network tests unless explicitly enabled."""
    if NETWORK_TESTS_ENABLED:
        return

    skip_network = pytest.mark.skip(reason="Set CLOUDSIGNAGE_NETWORK_TESTS=1 to run")
    for item in items:
        if "network" in item.keywords:
            item.add_marker(skip_network)
