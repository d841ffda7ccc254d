import sqlite3


class Transaction:
    """
    A connection that commits on a clean exit and rolls back if anything
    raised. Connections are cheap in sqlite, so each unit of work opens its
    own rather than sharing one across request threads. Rows come back as
    sqlite3.Row, so columns can be read by name.
    """

    def __init__(self, db_path: str, timeout: float = 10.0):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False, timeout=timeout)
        self.conn.row_factory = sqlite3.Row
        self.cursor = self.conn.cursor()

    def __enter__(self) -> sqlite3.Cursor:
        return self.cursor

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.cursor.close()
            self.conn.close()
