from dataclasses import dataclass, replace
from datetime import datetime, timezone
import logging
import threading
from typing import Callable, Literal
from uuid import uuid4

from linkvault.ai.types import LinkMetadata
from linkvault.db.context import Transaction
from linkvault.db.link import insert_link, update_link
from linkvault.db.types import SavedLink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkChange:
    kind: Literal["added", "modified"]
    link: SavedLink


class Subscription:
    """
    Handle returned by LinkFeed.subscribe(). Calling cancel() detaches the
    callback immediately; calling it again does nothing.
    """

    def __init__(
        self,
        feed: "LinkFeed",
        predicate: Callable[[SavedLink], bool],
        callback: Callable[[LinkChange], None],
    ) -> None:
        self._feed = feed
        self.predicate = predicate
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._feed._remove(self)


class LinkFeed:
    """
    In-process change notifications for saved links. Anything interested in
    links as they're added or edited (the vector index sync, mostly) subscribes
    with a predicate, and gets each matching change pushed to it after the
    write has been committed.
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        predicate: Callable[[SavedLink], bool],
        callback: Callable[[LinkChange], None],
    ) -> Subscription:
        subscription = Subscription(self, predicate, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, change: LinkChange) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if not subscription.active or not subscription.predicate(change.link):
                continue
            try:
                subscription.callback(change)
            except Exception:
                # One misbehaving subscriber shouldn't starve the others
                logger.exception("Link subscriber failed on %s", change.link.id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)


def owned_by(owner_id: str) -> Callable[[SavedLink], bool]:
    return lambda link: link.owner_id == owner_id


def link_from_metadata(
    owner_id: str, metadata: LinkMetadata, *, is_favorite: bool = False
) -> SavedLink:
    return SavedLink(
        id=uuid4().hex,
        owner_id=owner_id,
        url=metadata.url,
        title=metadata.title,
        description=metadata.description,
        image_url=metadata.image_url,
        tags=list(metadata.tags),
        categories=list(metadata.categories),
        is_favorite=is_favorite,
        created_at=datetime.now(timezone.utc),
    )


def save_link(db_path: str, feed: LinkFeed, link: SavedLink) -> SavedLink:
    if not link.id:
        link = replace(link, id=uuid4().hex)
    with Transaction(db_path) as db:
        saved = insert_link(db, link)
    feed.publish(LinkChange("added", saved))
    return saved


def edit_link(db_path: str, feed: LinkFeed, link: SavedLink) -> SavedLink | None:
    with Transaction(db_path) as db:
        saved = update_link(db, link)
    if saved is not None:
        feed.publish(LinkChange("modified", saved))
    return saved
