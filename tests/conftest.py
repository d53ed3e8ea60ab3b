"""
Shared pytest fixtures for the overlay manager tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset (skips the exhaustive bracket walks)
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.models import Player


@pytest.fixture
def client():
    """Create a test client with a manager session."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess['user'] = 'manager'
        yield client


@pytest.fixture
def anon_client():
    """Create a test client without a session (an overlay viewer)."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the document store at an empty temporary directory."""
    import app as app_module

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    return str(data_dir)


@pytest.fixture
def sample_players():
    """Eight players as match slot dicts, seeded in pairs p1-p2, p3-p4, ..."""
    return [Player(f"p{i}", f"Player {i}", points=100 - i).to_dict() for i in range(1, 9)]
