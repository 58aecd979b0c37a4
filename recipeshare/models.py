from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
ID_LENGTH = 20


def generate_id() -> str:
    """Return a new random recipe identifier.

    Identifiers are 20 characters drawn independently from
    :data:`ID_ALPHABET` using :mod:`secrets`. Uniqueness relies on the
    entropy of the draw; no collision check is made against the store.
    """

    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


@dataclass(frozen=True)
class Recipe:
    """Domain object representing a shared recipe.

    Recipes are immutable. A recipe built without an ``id`` receives a freshly
    generated one; recipes decoded from storage carry the document id instead.
    """

    title: str
    steps: Tuple[str, ...]
    author_name: str
    image_path: Optional[str] = None
    id: str = field(default_factory=generate_id)

    @classmethod
    def create(
        cls,
        *,
        title: str,
        steps: Iterable[str],
        author_name: str,
        image_path: Optional[str] = None,
    ) -> "Recipe":
        """Build a newly authored recipe, generating its id now."""

        return cls(
            title=title,
            steps=tuple(steps),
            author_name=author_name,
            image_path=image_path,
        )

    @classmethod
    def from_document(cls, snapshot: Any) -> Optional["Recipe"]:
        """Decode a Firestore document snapshot, or return ``None``."""

        if not getattr(snapshot, "exists", True):
            return None
        return decode(snapshot.id, snapshot.to_dict())

    def with_image(self, image_path: Optional[str]) -> "Recipe":
        return Recipe(
            id=self.id,
            title=self.title,
            steps=self.steps,
            author_name=self.author_name,
            image_path=image_path,
        )

    def to_document(self) -> dict:
        return encode(self)


def decode(doc_id: str, data: Optional[Mapping[str, Any]]) -> Optional[Recipe]:
    """Turn stored document fields into a :class:`Recipe`.

    ``title`` is a required non-empty string and ``authorName`` a required
    string. ``imagePath`` is kept only when it is a string. ``steps`` defaults
    to empty and any non-string entry is skipped. Documents that do not satisfy this shape yield ``None``.
    """

    if not isinstance(data, Mapping):
        logger.debug("Dropping document %s: no field data", doc_id)
        return None

    title = data.get("title")
    author_name = data.get("authorName")
    if not isinstance(title, str) or not title or not isinstance(author_name, str):
        logger.debug("Dropping document %s: missing title or authorName", doc_id)
        return None

    image_path = data.get("imagePath")
    if not isinstance(image_path, str):
        image_path = None

    raw_steps = data.get("steps")
    if isinstance(raw_steps, (list, tuple)):
        steps = tuple(step for step in raw_steps if isinstance(step, str))
    else:
        steps = ()

    return Recipe(
        id=doc_id,
        title=title,
        steps=steps,
        author_name=author_name,
        image_path=image_path,
    )


def encode(recipe: Recipe) -> dict:
    """Return the stored fields of ``recipe``. The id is the document key."""

    return {
        "title": recipe.title,
        "imagePath": recipe.image_path,
        "steps": list(recipe.steps),
        "authorName": recipe.author_name,
    }


def decode_all(documents: Iterable[Any]) -> List[Recipe]:
    """Decode ``(id, data)`` pairs, dropping documents that fail to decode."""

    recipes: List[Recipe] = []
    for doc_id, data in documents:
        recipe = decode(doc_id, data)
        if recipe is not None:
            recipes.append(recipe)
    return recipes


def parse_steps(steps_text: str) -> Sequence[str]:
    return [line.strip() for line in steps_text.splitlines() if line.strip()]


__all__ = [
    "ID_ALPHABET",
    "ID_LENGTH",
    "Recipe",
    "decode",
    "decode_all",
    "encode",
    "generate_id",
    "parse_steps",
]
