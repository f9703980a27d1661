"""Shared fixtures: an in-memory stand-in for the GCS client and test settings."""

import threading

import pytest
from google.api_core import exceptions as gexc

from market_pipeline.config import Settings
from market_pipeline.document_store import DocumentStore


class FakeBlob:
    """The handful of Blob methods the document store uses."""

    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name

    @property
    def generation(self):
        entry = self.bucket.objects.get(self.name)
        return entry[1] if entry else None

    def reload(self):
        if self.name not in self.bucket.objects:
            raise gexc.NotFound(f"{self.name} not found")

    def exists(self):
        return self.name in self.bucket.objects

    def download_as_text(self, if_generation_match=None):
        entry = self.bucket.objects.get(self.name)
        if entry is None:
            raise gexc.NotFound(f"{self.name} not found")
        if if_generation_match is not None and entry[1] != if_generation_match:
            raise gexc.PreconditionFailed(f"{self.name} generation mismatch")
        return entry[0]

    def upload_from_string(self, data, content_type=None, if_generation_match=None):
        with self.bucket.lock:
            if self.bucket.fail_uploads_for and self.name in self.bucket.fail_uploads_for:
                raise gexc.ServiceUnavailable(f"upload of {self.name} failed")
            current = self.bucket.objects.get(self.name)
            if if_generation_match is not None:
                current_gen = current[1] if current else 0
                if current_gen != if_generation_match:
                    raise gexc.PreconditionFailed(f"{self.name} generation mismatch")
            self.bucket.next_generation += 1
            self.bucket.objects[self.name] = (data, self.bucket.next_generation)
            self.bucket.uploads.append(self.name)


class FakeBucket:
    def __init__(self, name):
        self.name = name
        self.objects = {}            # object name -> (text, generation)
        self.uploads = []
        self.fail_uploads_for = set()
        self.next_generation = 0
        self.lock = threading.Lock()

    def blob(self, name):
        return FakeBlob(self, name)


class FakeStorageClient:
    def __init__(self):
        self.buckets = {}
        self.fail_listing = False

    def bucket(self, name):
        return self.buckets.setdefault(name, FakeBucket(name))

    def list_blobs(self, bucket, prefix=""):
        if self.fail_listing:
            raise gexc.ServiceUnavailable("listing unavailable")
        with bucket.lock:
            names = sorted(bucket.objects)
        return [FakeBlob(bucket, n) for n in names if n.startswith(prefix)]


@pytest.fixture
def gcs() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def bucket(gcs) -> FakeBucket:
    return gcs.bucket("test-bucket")


@pytest.fixture
def store(gcs) -> DocumentStore:
    return DocumentStore(gcs, "test-bucket")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_project_id="test-project",
        store_bucket="test-bucket",
        quote_api_key="demo-key-1234",
        request_delay=0,
        batch_delay=0,
        batch_size=3,
        real_world_database_id="markets",
        real_world_collection_id="real_world",
        manipulator_database_id="markets",
        manipulator_collection_id="manipulator",
        in_game_database_id="game",
        in_game_collection_id="stocks",
    )


@pytest.fixture
def env() -> dict:
    """Environment equivalent of the settings fixture."""
    return {
        "STORE_PROJECT_ID": "test-project",
        "STORE_BUCKET": "test-bucket",
        "QUOTE_API_KEY": "demo-key-1234",
        "REQUEST_DELAY_SECONDS": "0",
        "BATCH_DELAY_SECONDS": "0",
        "REALWORLD_DATABASE_ID": "markets",
        "REALWORLD_COLLECTION_ID": "real_world",
        "MANIPULATOR_DATABASE_ID": "markets",
        "MANIPULATOR_COLLECTION_ID": "manipulator",
        "INGAME_DATABASE_ID": "game",
        "INGAME_COLLECTION_ID": "stocks",
    }
