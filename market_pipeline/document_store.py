# market_pipeline/document_store.py
# Purpose: JSON documents in a GCS bucket, one object per document at
#          <database>/<collection>/<document_id>.json.
#          list / get / create / update / put, all failures as PersistenceError.

import json
import logging
import uuid
from typing import Dict, List, Optional

import requests
from google.api_core import exceptions as gexc
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from google.oauth2.credentials import Credentials

from market_pipeline.config import CollectionRef, Settings, STORE_FIELDS
from market_pipeline.errors import (DocumentExistsError, DocumentNotFoundError,
                                    PersistenceError)
from market_pipeline.records import DOCUMENT_ID

logger = logging.getLogger(__name__)

_STORE_ERRORS = (gexc.GoogleAPIError, requests.RequestException)


class DocumentStore:
    def __init__(self, client, bucket_name: str):
        self._client = client                        # one client per invocation
        self._bucket = client.bucket(bucket_name)

    @classmethod
    def from_settings(cls, settings: Settings, api_key: Optional[str] = None) -> "DocumentStore":
        """Storage client for the configured project/bucket.

        api_key (the inbound x-store-key header) is used as an OAuth access
        token; without it application default credentials apply.
        """
        settings.require(*STORE_FIELDS)
        credentials = Credentials(api_key) if api_key else None
        try:
            client = storage.Client(
                project=settings.store_project_id,
                credentials=credentials,
                client_options={"api_endpoint": settings.store_endpoint},
            )
        except GoogleAuthError as e:
            raise PersistenceError(f"Could not create storage client: {e}") from e
        return cls(client, settings.store_bucket)

    def _blob(self, ref: CollectionRef, document_id: str):
        """Handle to gs://<bucket>/<database>/<collection>/<id>.json"""
        return self._bucket.blob(f"{ref.path}/{document_id}.json")

    @staticmethod
    def _load(blob, **kwargs) -> dict:
        try:
            data = json.loads(blob.download_as_text(**kwargs))
        except ValueError as e:
            raise PersistenceError(f"Document {blob.name} is not valid JSON") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Document {blob.name} is not a JSON object")
        return data

    @staticmethod
    def _dump(data: dict) -> str:
        body = {k: v for k, v in data.items() if k != DOCUMENT_ID}
        return json.dumps(body, default=str)

    def list_documents(self, ref: CollectionRef, filters: Optional[Dict] = None) -> List[dict]:
        """Every document in the collection matching all equality filters."""
        prefix = f"{ref.path}/"
        docs = []
        try:
            for blob in self._client.list_blobs(self._bucket, prefix=prefix):
                rel = blob.name[len(prefix):]
                if "/" in rel or not rel.endswith(".json"):
                    continue
                doc = self._load(blob)
                if filters and any(doc.get(k) != v for k, v in filters.items()):
                    continue
                doc[DOCUMENT_ID] = rel[:-len(".json")]
                docs.append(doc)
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Failed to list {ref.path}: {e}") from e
        return docs

    def get_document(self, ref: CollectionRef, document_id: str) -> Optional[dict]:
        blob = self._blob(ref, document_id)
        try:
            doc = self._load(blob)
        except gexc.NotFound:
            return None
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Failed to read {ref.path}/{document_id}: {e}") from e
        doc[DOCUMENT_ID] = document_id
        return doc

    def create_document(self, ref: CollectionRef, data: dict, document_id: Optional[str] = None) -> str:
        """Create only if the id is free (generation precondition 0)."""
        document_id = document_id or uuid.uuid4().hex
        try:
            self._blob(ref, document_id).upload_from_string(
                self._dump(data), content_type="application/json", if_generation_match=0)
        except gexc.PreconditionFailed:
            raise DocumentExistsError(f"Document {ref.path}/{document_id} already exists") from None
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Failed to create {ref.path}/{document_id}: {e}") from e
        return document_id

    def update_document(self, ref: CollectionRef, document_id: str, data: dict) -> dict:
        """Merge data into an existing document; fails if it changed meanwhile."""
        blob = self._blob(ref, document_id)
        try:
            blob.reload()
            generation = blob.generation
            merged = self._load(blob, if_generation_match=generation)
            merged.update({k: v for k, v in data.items() if k != DOCUMENT_ID})
            blob.upload_from_string(self._dump(merged), content_type="application/json",
                                    if_generation_match=generation)
        except gexc.NotFound:
            raise DocumentNotFoundError(f"Document {ref.path}/{document_id} not found") from None
        except gexc.PreconditionFailed as e:
            raise PersistenceError(f"Document {ref.path}/{document_id} changed during update") from e
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Failed to update {ref.path}/{document_id}: {e}") from e
        merged[DOCUMENT_ID] = document_id
        return merged

    def put_document(self, ref: CollectionRef, document_id: str, data: dict) -> None:
        """Create or fully replace a document at a known id."""
        try:
            self._blob(ref, document_id).upload_from_string(
                self._dump(data), content_type="application/json")
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Failed to write {ref.path}/{document_id}: {e}") from e
