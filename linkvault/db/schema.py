from linkvault.db.context import Transaction


def create_schema(db_path: str):
    with Transaction(db_path) as db:
        # Turn on WAL mode
        db.connection.execute("PRAGMA journal_mode=WAL;")

        # tags and categories are JSON arrays; search_terms is derived from
        # the other columns whenever a link is written
        db.execute(
            """
        CREATE TABLE IF NOT EXISTS link (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            url TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            image_url TEXT NOT NULL,
            tags TEXT NOT NULL,
            categories TEXT NOT NULL,
            is_favorite INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL,
            search_terms TEXT NOT NULL
        );
        """
        )

        db.execute(
            "CREATE INDEX IF NOT EXISTS idx_link_owner_created ON link (owner_id, created_at);"
        )
        db.execute(
            "CREATE INDEX IF NOT EXISTS idx_link_owner_terms ON link (owner_id, search_terms);"
        )
