"""
Shared test fixtures for buildstamp tests.

This module provides pytest fixtures for unit and integration tests,
including:
- Temporary directory management
- Config file helpers
- Resetting the server settings between tests
"""

import os
import sys
import pytest
import tempfile
from pathlib import Path
from typing import Callable, Generator

import yaml

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from server.api import configure


# =============================================================================
# Function-scoped fixtures (created fresh for each test)
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test use.

    The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def isolated_cwd(temp_dir: Path, monkeypatch) -> Generator[Path, None, None]:
    """Change to temporary directory for test, restore afterward.

    Also clears BUILDSTAMP_CONFIG so no config from the host leaks in.
    """
    monkeypatch.delenv("BUILDSTAMP_CONFIG", raising=False)
    original_cwd = os.getcwd()
    os.chdir(temp_dir)
    try:
        yield temp_dir
    finally:
        os.chdir(original_cwd)


@pytest.fixture
def write_config(temp_dir: Path) -> Callable[[dict], Path]:
    """Return a helper writing a buildstamp.yml into the temp directory."""
    def _write(data: dict, name: str = "buildstamp.yml") -> Path:
        path = temp_dir / name
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path
    return _write


@pytest.fixture(autouse=True)
def reset_server_config() -> Generator[None, None, None]:
    """Each test starts from the default server settings."""
    configure(None)
    yield
    configure(None)


# =============================================================================
# Test markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (subprocess or live server)"
    )
