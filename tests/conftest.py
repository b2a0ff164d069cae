"""
Pytest Configuration and Fixtures
Shared fixtures and configuration for all tests
"""

import os

# Must be set before securevault.core.config builds its settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AUDIT_LOG_RETRY_DELAY_SECONDS", "0")

import pytest


# ============================================
# PYTEST CONFIGURATION
# ============================================

def pytest_collection_modifyitems(config, items):
    """Add markers based on test file path"""
    for item in items:
        path = str(item.fspath)
        if "/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in path:
            item.add_marker(pytest.mark.integration)
