"""
Shared pytest fixtures for linkvault tests.
"""

import pytest
from datetime import datetime, timezone

from linkvault.config import Settings
from linkvault.db.schema import create_schema
from linkvault.db.types import LinkDocument, SavedLink, VectorMatch, encode_document
from linkvault.db.vector import VectorIndex
from linkvault.links import LinkFeed
from linkvault.search import LinkSearch
from linkvault.util.containers import TTLCache


def fake_embed(text: str) -> list[float]:
    """Cheap deterministic bag-of-words vector; good enough to order results."""
    vec = [0.0] * 8
    for word in text.lower().split():
        vec[sum(map(ord, word)) % 8] += 1.0
    return vec


class FakeIndex:
    """Returns canned matches, nearest first, and records what it was asked."""

    def __init__(self, matches: list[VectorMatch] | None = None):
        self.matches = matches or []
        self.calls: list[tuple[str, int]] = []

    def nearest(self, namespace: str, vector: list[float], k: int) -> list[VectorMatch]:
        self.calls.append((namespace, k))
        return sorted(self.matches, key=lambda m: m.distance)[:k]


def make_match(
    id: str, distance: float, *, text: str = "", **doc_fields
) -> VectorMatch:
    return VectorMatch(
        id=id,
        text=text,
        metadata=encode_document(LinkDocument(**doc_fields)),
        distance=distance,
    )


@pytest.fixture
def settings(tmp_path):
    s = Settings(
        gemini_api_key="test-key",
        db_path=str(tmp_path / "linkvault.db"),
        vector_path=str(tmp_path / "vectors"),
        settle_ms=0,
    )
    create_schema(s.db_path)
    return s


@pytest.fixture
def embed():
    return fake_embed


@pytest.fixture
def index(settings):
    return VectorIndex(settings.vector_path)


@pytest.fixture
def feed():
    return LinkFeed()


@pytest.fixture
def fake_index():
    return FakeIndex()


@pytest.fixture
def link_search(fake_index):
    return LinkSearch(fake_index, fake_embed, TTLCache(300))


@pytest.fixture
def saved_link():
    """Factory for SavedLink records with sensible defaults."""

    def _make(**overrides) -> SavedLink:
        fields = dict(
            id="",
            owner_id="user-1",
            url="https://example.com/article",
            title="Example Article",
            description="An example description",
            image_url="https://example.com/image.jpg",
            tags=["example", "testing"],
            categories=["Tech"],
            is_favorite=False,
            created_at=datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc),
        )
        fields.update(overrides)
        return SavedLink(**fields)

    return _make


@pytest.fixture
def article_html():
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Foo | Example Blog</title>
        <meta property="og:title" content="Foo">
        <meta name="description" content="A post about foo">
        <meta property="og:description" content="Social description of foo">
        <meta property="og:image" content="https://example.com/foo.jpg">
        <meta name="keywords" content="bar, baz">
    </head>
    <body><article><h1>Foo</h1></article></body>
    </html>
    """


@pytest.fixture
def json_ld_html():
    return """
    <html>
    <head>
        <title>Packaging</title>
        <script type="application/ld+json">
            {"@type": "Article", "keywords": "packaging, branding , "}
        </script>
        <script type="application/ld+json">
            {"@type": "CreativeWork", "about": [{"name": "Typography"}, {"name": "branding"}]}
        </script>
        <script type="application/ld+json">{ this is not json </script>
        <script type="application/ld+json">
            {"@graph": [{"about": "Print"}, {"keywords": ["Color", "packaging"]}]}
        </script>
        <meta name="keywords" content="design,packaging">
    </head>
    <body></body>
    </html>
    """
