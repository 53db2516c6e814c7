# colorshop/backend/product_service/tests/conftest.py

import logging
import os
import tempfile

import pytest

# Point the app at a throwaway SQLite file before anything imports colorshop.db
_DB_DIR = tempfile.mkdtemp(prefix="colorshop-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/colorshop.db"
os.environ["DB_CONNECT_MAX_RETRIES"] = "1"
os.environ.pop("AZURE_STORAGE_ACCOUNT_NAME", None)
os.environ.pop("AZURE_STORAGE_ACCOUNT_KEY", None)

from fastapi.testclient import TestClient  # noqa: E402

from colorshop.db import Base, SessionLocal, engine  # noqa: E402
from colorshop.errors import StorageError  # noqa: E402
from colorshop.main import app, get_image_storage  # noqa: E402
from colorshop.storage import StoredImage  # noqa: E402

# Suppress noisy logs from SQLAlchemy/FastAPI during tests for cleaner output
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
logging.getLogger("fastapi").setLevel(logging.WARNING)


class FakeImageStorage:
    """In-memory stand-in for ImageStorage that records every call."""

    def __init__(self):
        self.blobs = {}
        self.uploads = []
        self.deletes = []
        self.fail_uploads = False
        self.fail_deletes = False
        self._counter = 0

    def upload(self, image):
        if self.fail_uploads:
            raise StorageError("Could not upload image.")
        self._counter += 1
        handle = f"paint-shop/colors/test-{self._counter}.png"
        self.blobs[handle] = image.data
        self.uploads.append(handle)
        return StoredImage(
            url=f"https://testaccount.blob.core.windows.net/product-images/{handle}",
            handle=handle,
        )

    def delete(self, handle):
        self.deletes.append(handle)
        if self.fail_deletes:
            raise StorageError(f"Could not delete image '{handle}'")
        self.blobs.pop(handle, None)

    def close(self):
        pass


# --- Pytest Fixtures ---
@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def image_storage():
    return FakeImageStorage()


@pytest.fixture
def client(image_storage):
    app.dependency_overrides[get_image_storage] = lambda: image_storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_image_storage, None)


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def png_file():
    return {"colorImage": ("swatch.png", PNG_BYTES, "image/png")}
