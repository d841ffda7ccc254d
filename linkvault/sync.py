from datetime import timezone
import logging
import threading
from typing import Callable

from linkvault.db.types import LinkDocument, SavedLink, VectorRecord
from linkvault.db.vector import VectorIndex
from linkvault.links import LinkChange, LinkFeed, Subscription, owned_by

logger = logging.getLogger(__name__)

Embedder = Callable[[str], list[float]]


def document_text(link: SavedLink) -> str:
    """
    The text that gets embedded for a link. Everything a user might describe
    a link by goes in, with the URL standing in for a missing title.
    """
    parts = [
        link.title or link.url,
        link.description,
        " ".join(link.tags),
        " ".join(link.categories),
        link.search_terms,
    ]
    return " ".join(p for p in parts if p)


def link_document(link: SavedLink) -> LinkDocument:
    created_at = link.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return LinkDocument(
        url=link.url,
        title=link.title or link.url,
        description=link.description,
        image_url=link.image_url,
        categories=list(link.categories),
        tags=list(link.tags),
        is_favorite=link.is_favorite,
        owner_id=link.owner_id,
        date_added=created_at.isoformat(),
    )


def build_record(link: SavedLink, embed: Embedder) -> VectorRecord:
    text = document_text(link)
    return VectorRecord(
        id=link.id,
        vector=embed(text),
        text=text,
        metadata=link_document(link),
    )


def sync_records(index: VectorIndex, owner_id: str, records: list[VectorRecord]) -> int:
    count = index.upsert(owner_id, records)
    logger.info("Synced %d links for %s", count, owner_id)
    return count


class LinkSync:
    """
    Keeps the vector index up to date with the document store. For each owner
    being watched, every added or edited link is embedded and upserted into
    that owner's namespace. Failures are logged and left for the next edit or
    a manual /sync to fix; they never propagate back into whoever saved the
    link.
    """

    def __init__(self, index: VectorIndex, embed: Embedder, feed: LinkFeed) -> None:
        self.index = index
        self.embed = embed
        self.feed = feed
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def watch(self, owner_id: str) -> Subscription:
        with self._lock:
            if owner_id in self._subscriptions:
                return self._subscriptions[owner_id]
            subscription = self.feed.subscribe(owned_by(owner_id), self.on_change)
            self._subscriptions[owner_id] = subscription
            return subscription

    def unwatch(self, owner_id: str) -> None:
        with self._lock:
            subscription = self._subscriptions.pop(owner_id, None)
        if subscription is not None:
            subscription.cancel()

    def close(self) -> None:
        for owner_id in list(self._subscriptions):
            self.unwatch(owner_id)

    def on_change(self, change: LinkChange) -> None:
        link = change.link
        try:
            sync_records(self.index, link.owner_id, [build_record(link, self.embed)])
        except Exception as e:
            logger.error("Failed to sync %s link %s: %s", change.kind, link.id, e)
