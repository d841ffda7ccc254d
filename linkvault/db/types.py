from dataclasses import dataclass, field
from datetime import datetime
import json
import logging
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Bump when LinkDocument changes shape in a way old readers can't handle
DOCUMENT_VERSION = 1


@dataclass(kw_only=True)
class SavedLink:
    id: str = ""
    owner_id: str
    url: str
    title: str = ""
    description: str = ""
    image_url: str = ""
    tags: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    is_favorite: bool = False
    created_at: datetime
    search_terms: str = ""


def derive_search_terms(link: SavedLink) -> str:
    """
    One lowercased string holding everything worth prefix-searching on, in the
    order title, tags, categories, description, url.
    """
    parts = [
        link.title,
        " ".join(link.tags),
        " ".join(link.categories),
        link.description,
        link.url,
    ]
    return " ".join(p for p in parts if p).lower()


class LinkDocument(BaseModel):
    """
    The metadata that rides along with each vector in the index. It's stored
    as a JSON blob, and only ever written by encode_document() and read by
    decode_document(), so adding a field means changing this class and
    nothing else.
    """

    version: int = DOCUMENT_VERSION
    url: str = ""
    title: str = ""
    description: str = ""
    image_url: str = ""
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    is_favorite: bool = False
    owner_id: str = ""
    date_added: str = ""


def encode_document(doc: LinkDocument) -> str:
    return doc.model_dump_json()


def decode_document(blob: str | None) -> LinkDocument:
    """
    A blob we can't make sense of becomes an empty document rather than an
    exception, so one bad record can't sink a whole batch of search results.
    """
    if not blob:
        return LinkDocument()
    try:
        data = json.loads(blob)
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        if data.get("version", DOCUMENT_VERSION) > DOCUMENT_VERSION:
            raise ValueError(f"unsupported document version {data['version']}")
        return LinkDocument.model_validate(_upgrade(data))
    except (TypeError, ValueError, ValidationError) as e:
        logger.warning("Failed to decode link document: %s", e)
        return LinkDocument()


def _upgrade(data: dict) -> dict:
    """
    Documents written before versioning came from the browser client, which
    used camelCase keys. Map those onto the current field names.
    """
    if "version" in data:
        return data
    renames = {"imageUrl": "image_url", "isFavorite": "is_favorite",
               "userId": "owner_id", "dateAdded": "date_added"}
    return {renames.get(k, k): v for k, v in data.items()}


@dataclass(kw_only=True)
class VectorRecord:
    id: str
    vector: list[float]
    text: str
    metadata: LinkDocument


@dataclass(kw_only=True)
class VectorMatch:
    id: str
    text: str
    # Still encoded; see decode_document()
    metadata: str
    distance: float
