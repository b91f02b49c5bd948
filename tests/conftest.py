import sys
import os

import pytest

# Ensure repository root is on sys.path so 'streamrelay' is importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from streamrelay.task_registry import TaskRegistry  # noqa: E402


@pytest.fixture
def registry():
    return TaskRegistry()
