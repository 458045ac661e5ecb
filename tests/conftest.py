import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from pointbank import services
from pointbank.api import app
from pointbank.config import settings
from pointbank.database import create_ledger_engine


@pytest.fixture
def session_local(tmp_path, monkeypatch):
    """Provide an isolated, bootstrapped database file for each test."""
    engine = create_ledger_engine(f"sqlite:///{tmp_path / 'ledger.db'}", timeout=1)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    monkeypatch.setattr(services, "SessionLocal", TestingSessionLocal)
    # Keep credential hashing fast under test.
    monkeypatch.setattr(settings, "password_hash_iterations", 1000)
    services.bootstrap()
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def client(session_local):
    return TestClient(app)
