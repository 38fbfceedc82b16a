import os
import sys

import pytest

REPO_ROOT = os.path.join(os.path.dirname(__file__), "..")

# backend/ holds flat modules (server.py imports its siblings directly)
sys.path.insert(0, os.path.join(REPO_ROOT, "backend"))

# scripts/ holds the CLI tools, importable for tests
sys.path.insert(0, os.path.join(REPO_ROOT, "scripts"))


@pytest.fixture(scope="session")
def sample_data_dir():
    """Bundled CSV catalog + completions used by the Flask app by default."""
    return os.path.join(REPO_ROOT, "data")
