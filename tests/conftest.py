"""Shared fixtures: temporary database, blob storage and a scripted AI backend."""

import pytest
from fakes import FakeBackend

from receiptpal.config import AppConfig
from receiptpal.db import Database
from receiptpal.services import build_services
from receiptpal.storage import BlobStorage


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(root_dir=tmp_path / "blobs")


@pytest.fixture
def services(database, storage, backend):
    return build_services(AppConfig(), database=database, storage=storage, backend=backend)
