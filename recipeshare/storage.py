from __future__ import annotations

from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, NamedTuple, Optional, Protocol

from .models import Recipe


class StoreError(Exception):
    """Raised when the backing store cannot be reached or rejects a call."""


class RawDocument(NamedTuple):
    """A stored document: its key and its undecoded field data."""

    id: str
    data: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class StoredImage:
    stream: BinaryIO
    content_type: Optional[str] = None


class RecipeStore(Protocol):
    """Protocol describing the behaviour required by the web layer."""

    def fetch_all(self) -> List[RawDocument]:
        """Return every stored recipe document or raise :class:`StoreError`."""

    def fetch_one(self, recipe_id: str) -> Optional[RawDocument]:
        """Return a single document, ``None`` when it does not exist."""

    def save(self, recipe: Recipe) -> None:
        """Persist ``recipe`` under its id."""

    def upload_image(
        self,
        recipe_id: str,
        filename: str,
        stream: BinaryIO,
        content_type: Optional[str] = None,
    ) -> str:
        """Store a photo for ``recipe_id`` and return its reference path."""

    def resolve_image(self, path: str) -> Optional[StoredImage]:
        """Return the stored bytes for ``path`` or ``None`` if missing."""


__all__ = ["RawDocument", "RecipeStore", "StoreError", "StoredImage"]
