# tests/conftest.py
import os
import sys

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Keep tests off the network defaults and out of the log directory
os.environ.setdefault("STORY_API_URL", "http://workflow.test/run")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("STORY_API_RETRY_DELAY_SECONDS", "0")

import pytest  # noqa: E402
import structlog  # noqa: E402


@pytest.fixture
def story_payload() -> dict:
    return {
        "n_chapters": 3,
        "story_instructions": "A heist on a floating city, told with humour.",
        "primary_characters": "Mara, a retired thief",
        "secondary_characters": "Ode, her nephew",
        "l_chapter": 800,
    }


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()
