from dataclasses import asdict, dataclass, fields, replace
import logging
from pydantic import BaseModel, ConfigDict, Field
from typing import Callable

from linkvault.db.types import LinkDocument, decode_document
from linkvault.db.vector import VectorIndex
from linkvault.util.containers import TTLCache

logger = logging.getLogger(__name__)

# Query tokens like "category:design" (or "category=design") become filters.
# Aliases map onto the canonical filter they stand for.
FILTER_KEYS = {
    "category": "category",
    "tag": "tag",
    "tags": "tag",
    "title": "title",
    "description": "description",
    "date": "date",
    "month": "date",
}

NO_RESULTS_ANSWER = (
    "No links found. Try a more specific query like 'category:design' or a keyword."
)


class RetrievalError(Exception):
    pass


@dataclass(kw_only=True, frozen=True)
class SearchFilters:
    category: str | None = None
    tag: str | None = None
    title: str | None = None
    description: str | None = None
    date: str | None = None

    def any(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    def merged_with(self, other: "SearchFilters | None") -> "SearchFilters":
        """Values set on `other` win."""
        if other is None:
            return self
        overrides = {k: v.lower() for k, v in asdict(other).items() if v}
        return replace(self, **overrides)

    def matches(self, doc: LinkDocument) -> bool:
        """
        A document passes only if it satisfies every filter that's set.
        Categories and tags must match a whole entry; title and description
        only need to contain the value. Dates are compared as strings, so
        "2025-03" matches anything added in March 2025.
        """
        tags = [t.lower() for t in doc.tags]
        categories = [c.lower() for c in doc.categories]
        return (
            (not self.category or self.category in categories)
            and (not self.tag or self.tag in tags)
            and (not self.title or self.title in doc.title.lower())
            and (not self.description or self.description in doc.description.lower())
            and (not self.date or self.date in doc.date_added)
        )


@dataclass(kw_only=True, frozen=True)
class ParsedQuery:
    filters: SearchFilters
    keywords: list[str]


def parse_query(query_text: str) -> ParsedQuery:
    filters: dict[str, str] = {}
    keywords: list[str] = []
    for token in query_text.lower().split():
        key, sep, value = token.partition(":")
        if not sep:
            key, sep, value = token.partition("=")

        if sep and key in FILTER_KEYS:
            if value:
                filters[FILTER_KEYS[key]] = value
            continue
        # A bare filter word ("category") on its own is noise, not a keyword
        if token in FILTER_KEYS:
            continue
        keywords.append(token)
    return ParsedQuery(filters=SearchFilters(**filters), keywords=keywords)


def keyword_score(doc: LinkDocument, keywords: list[str]) -> int:
    text = " ".join(
        [doc.title, doc.description, " ".join(doc.tags), doc.url]
    ).lower()
    return sum(1 for kw in keywords if kw in text)


class RetrievedLink(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    url: str
    description: str
    image: str = ""
    tags: list[str] = Field(default_factory=list)
    category: str = ""
    is_favorite: bool = Field(default=False, alias="isFavorite")
    date_added: str = Field(default="", alias="dateAdded")
    score: int = 0
    distance: float = 0.0


class SearchPage(BaseModel):
    answer: str
    links: list[RetrievedLink]
    total: int


@dataclass
class _Candidate:
    doc: LinkDocument
    text: str
    score: int
    distance: float


def _to_link(candidate: _Candidate) -> RetrievedLink:
    doc = candidate.doc
    return RetrievedLink(
        title=doc.title or candidate.text or "Untitled",
        url=doc.url,
        description=doc.description,
        image=doc.image_url,
        tags=list(doc.tags),
        category=doc.categories[0] if doc.categories else "",
        is_favorite=doc.is_favorite,
        date_added=doc.date_added,
        score=candidate.score,
        distance=candidate.distance,
    )


def build_answer(links: list[RetrievedLink], offset: int, total: int) -> str:
    if not links:
        return NO_RESULTS_ANSWER
    header = (
        f"Here are your matching links ({offset + 1}-{offset + len(links)} of {total}):"
    )
    return "\n".join([header, *[f"* {link.title} - {link.url}" for link in links]])


class LinkSearch:
    """
    Chat-style search over a user's saved links. The vector index gets us a
    pool of semantically close candidates; from there it's plain keyword
    counting and exact filters, which is what makes a query like
    "category:design ortra" behave the way a user expects.
    """

    def __init__(
        self,
        index: VectorIndex,
        embed: Callable[[str], list[float]],
        cache: TTLCache[tuple, SearchPage],
    ) -> None:
        self.index = index
        self.embed = embed
        self.cache = cache

    def search(
        self,
        query_text: str,
        session_id: str,
        filters: SearchFilters | None = None,
        k: int = 20,
        offset: int = 0,
        limit: int = 10,
    ) -> SearchPage:
        cache_key = (session_id, query_text, k, offset, limit, filters)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            page = self._search(query_text, session_id, filters, k, offset, limit)
        except Exception as e:
            logger.exception("Search failed for session %s", session_id)
            raise RetrievalError(str(e)) from e

        self.cache.set(cache_key, page)
        return page

    def _search(
        self,
        query_text: str,
        session_id: str,
        filters: SearchFilters | None,
        k: int,
        offset: int,
        limit: int,
    ) -> SearchPage:
        parsed = parse_query(query_text)
        active = parsed.filters.merged_with(filters)
        keywords = parsed.keywords

        matches = self.index.nearest(session_id, self.embed(query_text), k)
        logger.debug("Index returned %d candidates for %r", len(matches), query_text)

        candidates: list[_Candidate] = []
        for match in matches:
            doc = decode_document(match.metadata)
            candidates.append(
                _Candidate(
                    doc=doc,
                    text=match.text,
                    score=keyword_score(doc, keywords),
                    distance=match.distance,
                )
            )

        if active.any():
            candidates = [c for c in candidates if active.matches(c.doc)]
        elif keywords:
            candidates = [c for c in candidates if c.score > 0]

        candidates.sort(key=lambda c: (-c.score, c.distance))

        # Sorted best-first, so the first time a URL shows up is its best hit
        unique: list[_Candidate] = []
        seen: set[str] = set()
        for candidate in candidates:
            if candidate.doc.url in seen:
                continue
            seen.add(candidate.doc.url)
            unique.append(candidate)

        links = [_to_link(c) for c in unique[offset : offset + limit]]
        return SearchPage(
            answer=build_answer(links, offset, len(unique)),
            links=links,
            total=len(unique),
        )
