from __future__ import annotations

import io
import logging
import os
from typing import BinaryIO, List, Optional

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore, storage
from werkzeug.utils import secure_filename

from .models import Recipe, encode
from .storage import RawDocument, RecipeStore, StoredImage, StoreError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0

_BACKEND_ERRORS = (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError)


class FirestoreRecipeStore(RecipeStore):
    """GCP backed recipe store using Firestore and Cloud Storage."""

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        collection_name: str = "recipes",
        bucket_name: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._project = project
        self._collection_name = collection_name
        self._bucket_name = bucket_name
        self._timeout = timeout

        self._firestore_client = firestore.Client(project=project)
        self._collection = self._firestore_client.collection(collection_name)

        if bucket_name:
            self._storage_client = storage.Client(project=project)
            self._bucket = self._storage_client.bucket(bucket_name)
        else:
            self._storage_client = None
            self._bucket = None

    @classmethod
    def from_env(cls) -> "FirestoreRecipeStore":
        """Build a store instance from environment variables."""

        project = os.environ.get("GCP_PROJECT")
        collection_name = os.environ.get("RECIPES_COLLECTION", "recipes")
        bucket_name = os.environ.get("GCS_BUCKET")
        timeout = float(os.environ.get("RECIPES_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT))
        return cls(
            project=project,
            collection_name=collection_name,
            bucket_name=bucket_name,
            timeout=timeout,
        )

    def fetch_all(self) -> List[RawDocument]:
        try:
            docs = list(self._collection.stream(retry=None, timeout=self._timeout))
        except _BACKEND_ERRORS as exc:
            logger.warning("Listing %s failed: %s", self._collection_name, exc)
            raise StoreError(f"Could not list '{self._collection_name}'.") from exc
        return [RawDocument(doc.id, doc.to_dict()) for doc in docs]

    def fetch_one(self, recipe_id: str) -> Optional[RawDocument]:
        try:
            snapshot = self._collection.document(recipe_id).get(retry=None, timeout=self._timeout)
        except gcloud_exceptions.NotFound:
            return None
        except _BACKEND_ERRORS as exc:
            logger.warning("Fetching recipe %s failed: %s", recipe_id, exc)
            raise StoreError(f"Could not fetch recipe '{recipe_id}'.") from exc

        if not snapshot.exists:
            return None
        return RawDocument(snapshot.id, snapshot.to_dict())

    def save(self, recipe: Recipe) -> None:
        try:
            self._collection.document(recipe.id).set(encode(recipe), retry=None, timeout=self._timeout)
        except _BACKEND_ERRORS as exc:
            logger.warning("Saving recipe %s failed: %s", recipe.id, exc)
            raise StoreError(f"Could not save recipe '{recipe.id}'.") from exc
        logger.info("Saved recipe %s", recipe.id)

    def upload_image(
        self,
        recipe_id: str,
        filename: str,
        stream: BinaryIO,
        content_type: Optional[str] = None,
    ) -> str:
        if not self._bucket:
            raise RuntimeError("A Cloud Storage bucket must be configured to upload images.")

        path = self._build_blob_name(recipe_id, filename)
        blob = self._bucket.blob(path)

        stream.seek(0)
        try:
            blob.upload_from_file(stream, content_type=content_type, retry=None, timeout=self._timeout)
        except _BACKEND_ERRORS as exc:
            logger.warning("Uploading %s failed: %s", path, exc)
            raise StoreError(f"Could not upload image for '{recipe_id}'.") from exc
        return path

    def resolve_image(self, path: str) -> Optional[StoredImage]:
        if not self._bucket:
            return None

        blob = self._bucket.blob(path)
        try:
            data = blob.download_as_bytes(retry=None, timeout=self._timeout)
        except gcloud_exceptions.NotFound:
            return None
        except _BACKEND_ERRORS as exc:
            logger.warning("Downloading %s failed: %s", path, exc)
            raise StoreError(f"Could not download '{path}'.") from exc
        return StoredImage(stream=io.BytesIO(data), content_type=blob.content_type)

    def _build_blob_name(self, recipe_id: str, filename: str) -> str:
        safe = secure_filename(filename) or "photo"
        return f"recipes/{recipe_id}/{safe}"


__all__ = ["DEFAULT_REQUEST_TIMEOUT", "FirestoreRecipeStore"]
