from datetime import datetime
import json
from sqlite3 import Cursor, Row

from linkvault.db.types import SavedLink, derive_search_terms

# Sorts after any character that will realistically appear in search terms, so
# "prefix" <= terms <= "prefix" + PREFIX_END is a prefix match.
PREFIX_END = "\uf8ff"


def _row_to_link(row: Row) -> SavedLink:
    return SavedLink(
        id=row["id"],
        owner_id=row["owner_id"],
        url=row["url"],
        title=row["title"],
        description=row["description"],
        image_url=row["image_url"],
        tags=json.loads(row["tags"]),
        categories=json.loads(row["categories"]),
        is_favorite=bool(row["is_favorite"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        search_terms=row["search_terms"],
    )


def insert_link(db: Cursor, link: SavedLink) -> SavedLink:
    """
    search_terms is always recomputed here, so callers never have to remember
    to keep it in sync with the fields it's built from.
    """
    search_terms = derive_search_terms(link)
    db.execute(
        """
        INSERT INTO link (
            id, owner_id, url, title, description, image_url, tags,
            categories, is_favorite, created_at, search_terms
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        RETURNING *
    """,
        (
            link.id,
            link.owner_id,
            link.url,
            link.title,
            link.description,
            link.image_url,
            json.dumps(link.tags),
            json.dumps(link.categories),
            int(link.is_favorite),
            link.created_at.isoformat(),
            search_terms,
        ),
    )
    row = db.fetchone()
    assert row is not None, "Failed to insert link"
    return _row_to_link(row)


def update_link(db: Cursor, link: SavedLink) -> SavedLink | None:
    """
    Overwrites the editable fields of an existing link. The owner and creation
    time never change. Returns None if there was no such link.
    """
    db.execute(
        """
        UPDATE link SET
            url = ?,
            title = ?,
            description = ?,
            image_url = ?,
            tags = ?,
            categories = ?,
            is_favorite = ?,
            search_terms = ?
        WHERE id = ?
        RETURNING *
    """,
        (
            link.url,
            link.title,
            link.description,
            link.image_url,
            json.dumps(link.tags),
            json.dumps(link.categories),
            int(link.is_favorite),
            derive_search_terms(link),
            link.id,
        ),
    )
    row = db.fetchone()
    return _row_to_link(row) if row else None


def get_link_by_id(db: Cursor, link_id: str) -> SavedLink | None:
    db.execute("SELECT * FROM link WHERE id = ?", (link_id,))
    row = db.fetchone()
    return _row_to_link(row) if row else None


def list_links_for_owner(db: Cursor, owner_id: str, limit: int = 100) -> list[SavedLink]:
    db.execute(
        "SELECT * FROM link WHERE owner_id = ? ORDER BY created_at DESC LIMIT ?",
        (owner_id, limit),
    )
    return [_row_to_link(row) for row in db.fetchall()]


def search_links_by_prefix(
    db: Cursor, owner_id: str, prefix: str, limit: int = 100
) -> list[SavedLink]:
    """
    A range query over search_terms, which is as close to "search" as a plain
    key-value store gets. Only matches from the start of the terms string.
    """
    prefix = prefix.lower()
    db.execute(
        """
        SELECT * FROM link
        WHERE owner_id = ? AND search_terms >= ? AND search_terms <= ?
        ORDER BY search_terms
        LIMIT ?
    """,
        (owner_id, prefix, prefix + PREFIX_END, limit),
    )
    return [_row_to_link(row) for row in db.fetchall()]


def list_links_created_between(
    db: Cursor, owner_id: str, start: datetime, end: datetime
) -> list[SavedLink]:
    db.execute(
        """
        SELECT * FROM link
        WHERE owner_id = ? AND created_at >= ? AND created_at < ?
        ORDER BY created_at DESC
    """,
        (owner_id, start.isoformat(), end.isoformat()),
    )
    return [_row_to_link(row) for row in db.fetchall()]
