# tests/conftest.py
# Ensure project root is on sys.path so `import feasibility` works reliably in pytest.
import sys
from pathlib import Path

import pytest

# Resolve project root as the parent of the tests folder
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    # put project root at front so local packages take precedence
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def client():
    """TestClient with the lifespan run, so app.state holds the bundled rules."""
    from fastapi.testclient import TestClient
    from feasibility.load_rules import RULES_DIR
    from feasibility.main import app

    with TestClient(app) as c:
        yield c
    # tests may point the app at a temporary folder
    app.state.rules_dir = RULES_DIR
