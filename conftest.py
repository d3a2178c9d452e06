from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from fizzrix.app import create_app
from fizzrix.storage import Repository


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Fresh, empty data directory for every test."""
    return tmp_path / "data"


@pytest.fixture
def repo(data_dir: Path) -> Repository:
    return Repository(data_dir)


@pytest.fixture
def app(data_dir: Path):
    return create_app(data_dir)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
