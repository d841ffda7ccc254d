from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timezone
from functools import partial
import json
import logging
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional
from urllib.parse import urlparse

from linkvault.ai.gemini.base import embed as gemini_embed
from linkvault.ai.types import LinkMetadata
from linkvault.config import Settings, configure_logging, load_settings
from linkvault.db.context import Transaction
from linkvault.db.link import list_links_for_owner, search_links_by_prefix
from linkvault.db.schema import create_schema
from linkvault.db.types import SavedLink, VectorRecord, decode_document
from linkvault.db.vector import VectorIndex
from linkvault.fetch import ExtractionError, fetch_metadata
from linkvault.links import LinkFeed, link_from_metadata, save_link
from linkvault.search import LinkSearch, RetrievalError, SearchPage
from linkvault.sync import LinkSync, sync_records
from linkvault.util.containers import InFlightSet, LinkInFlightError, TTLCache

"""
Everything the routes need is built once into a Services object and handed
out through FastAPI's dependency injection, so tests can swap in their own
with app.dependency_overrides. The routes are plain (non-async) functions:
they spend their time blocked on sqlite, HTTP and a headless browser, and
FastAPI runs them on its thread pool.
"""

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    guard: InFlightSet[str]
    index: VectorIndex
    search: LinkSearch
    feed: LinkFeed
    sync: LinkSync


def build_services(settings: Settings) -> Services:
    create_schema(settings.db_path)
    embed = partial(gemini_embed, settings)
    index = VectorIndex(settings.vector_path)
    feed = LinkFeed()
    return Services(
        settings=settings,
        guard=InFlightSet(),
        index=index,
        search=LinkSearch(index, embed, TTLCache(settings.search_cache_ttl)),
        feed=feed,
        sync=LinkSync(index, embed, feed),
    )


_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(load_settings())
    return _services


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield
    if _services is not None:
        _services.sync.close()


app = FastAPI(title="linkvault", lifespan=lifespan)


class SearchRequest(BaseModel):
    # Everything is optional here so missing fields are a 400, not a 422
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    session_id: str = Field(default="", alias="sessionId")
    k: int = Field(default=20, ge=1)
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=10, ge=1)


class SyncLink(BaseModel):
    id: str
    vector: List[float]
    text: str = ""
    # Either the encoded blob or the object itself
    metadata: Any = None


class SyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(default="", alias="userId")
    links: Optional[List[SyncLink]] = None


class SyncResponse(BaseModel):
    success: bool
    count: int


class SaveLinkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    url: str
    title: str = ""
    description: str = ""
    image_url: str = Field(default="", alias="imageUrl")
    tags: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    is_favorite: bool = Field(default=False, alias="isFavorite")


class SavedLinkOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    url: str
    title: str
    description: str
    image_url: str = Field(alias="imageUrl")
    tags: List[str]
    categories: List[str]
    is_favorite: bool = Field(alias="isFavorite")
    created_at: str = Field(alias="createdAt")
    search_terms: str = Field(alias="searchTerms")


def format_link(link: SavedLink) -> SavedLinkOut:
    created_at = link.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return SavedLinkOut(
        id=link.id,
        user_id=link.owner_id,
        url=link.url,
        title=link.title,
        description=link.description,
        image_url=link.image_url,
        tags=link.tags,
        categories=link.categories,
        is_favorite=link.is_favorite,
        created_at=created_at.isoformat(),
        search_terms=link.search_terms,
    )


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# -----------------
# Routes: Metadata
# -----------------
@app.get("/metadata", response_model=LinkMetadata, tags=["metadata"])
def get_metadata(url: Optional[str] = None, services: Services = Depends(get_services)):
    """
    Fetches and enriches metadata for a URL. The result is a proposal: nothing
    is saved until the caller posts it to /links.
    """
    if not url or not is_valid_url(url):
        raise HTTPException(status_code=400, detail="Invalid URL")

    try:
        return fetch_metadata(url, services.settings, services.guard)
    except LinkInFlightError:
        raise HTTPException(
            status_code=429, detail="Request already in progress. Please wait."
        )
    except ExtractionError as e:
        logger.error("Error fetching metadata: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch metadata")


# -----------------
# Routes: Search
# -----------------
@app.post("/search", response_model=SearchPage, tags=["search"])
def search(request: SearchRequest, services: Services = Depends(get_services)):
    if not request.message or not request.session_id:
        raise HTTPException(
            status_code=400, detail="Message and sessionId are required"
        )

    try:
        page = services.search.search(
            request.message,
            request.session_id,
            k=request.k,
            offset=request.offset,
            limit=request.limit,
        )
    except RetrievalError as e:
        raise HTTPException(status_code=500, detail=f"Internal server error: {e}")
    return page


@app.post("/sync", response_model=SyncResponse, tags=["search"])
def sync(request: SyncRequest, services: Services = Depends(get_services)):
    """
    Upserts pre-embedded links into a user's vector namespace. This is the
    bulk path; links saved through /links are synced automatically.
    """
    if not request.user_id or request.links is None:
        raise HTTPException(status_code=400, detail="userId and links required")

    records = []
    for link in request.links:
        blob = link.metadata
        if not isinstance(blob, str):
            blob = json.dumps(blob) if blob is not None else ""
        records.append(
            VectorRecord(
                id=link.id,
                vector=link.vector,
                text=link.text,
                metadata=decode_document(blob),
            )
        )

    try:
        count = sync_records(services.index, request.user_id, records)
    except Exception as e:
        logger.error("Sync error: %s", e)
        raise HTTPException(status_code=500, detail=f"Sync failed: {e}")
    return SyncResponse(success=True, count=count)


# -----------------
# Routes: Links
# -----------------
@app.post("/links", response_model=SavedLinkOut, tags=["link"])
def create_link(request: SaveLinkRequest, services: Services = Depends(get_services)):
    if not is_valid_url(request.url):
        raise HTTPException(status_code=400, detail="Invalid URL")

    metadata = LinkMetadata(
        url=request.url,
        title=request.title,
        description=request.description,
        image_url=request.image_url,
        tags=request.tags,
        categories=request.categories,
    )
    services.sync.watch(request.user_id)
    link = save_link(
        services.settings.db_path,
        services.feed,
        link_from_metadata(request.user_id, metadata, is_favorite=request.is_favorite),
    )
    return format_link(link)


@app.get("/links", response_model=List[SavedLinkOut], tags=["link"])
def list_links(
    userId: str,
    q: Optional[str] = None,
    limit: int = 100,
    services: Services = Depends(get_services),
):
    """
    Lists a user's links, newest first. With q, does a prefix search on the
    links' search terms instead.
    """
    with Transaction(services.settings.db_path) as db:
        if q and q.strip():
            links = search_links_by_prefix(db, userId, q.strip(), limit)
        else:
            links = list_links_for_owner(db, userId, limit)
    return [format_link(link) for link in links]


@app.get("/health")
def health(services: Services = Depends(get_services)):
    return {
        "status": "healthy",
        "ai_model": services.settings.ai_model.value,
        "in_flight": len(services.guard),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000, log_level="info")
