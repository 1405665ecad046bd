import sys
import os
from tempfile import TemporaryDirectory
import pytest
# Ensure the project root is on sys.path for all tests
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

BUNDLES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'bundles')


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with TemporaryDirectory() as dir_path:
        yield dir_path


@pytest.fixture
def bundle_path():
    """Return the path of a bundle file in tests/bundles."""
    def _path(name):
        return os.path.join(BUNDLES_DIR, name)
    return _path


@pytest.fixture
def bundle_source(bundle_path):
    """Return the source text of a bundle file in tests/bundles."""
    def _read(name):
        with open(bundle_path(name), 'r', encoding='utf-8') as f:
            return f.read()
    return _read


@pytest.fixture
def clean_env(monkeypatch):
    """Remove PW_* overrides so tests see the defaults."""
    for name in list(os.environ):
        if name.startswith('PW_'):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch
