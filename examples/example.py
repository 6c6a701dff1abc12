"""Example: basic simpledb usage against a local SQLite file.

Against MySQL, construct the manager with host/user/password/database instead:
    SimpleDb("localhost:3306", "app", "secret", "blog")   # needs PyMySQL

Run:
    python examples/example.py
"""

import dataclasses
import datetime
import logging
import os
import tempfile
from typing import Optional

from simpledb import SimpleDb


@dataclasses.dataclass
class Article:
    id: Optional[int] = None
    created_date: Optional[datetime.datetime] = None
    title: Optional[str] = None
    body: Optional[str] = None
    is_blind: bool = False


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    db_path = os.path.join(tempfile.gettempdir(), "simpledb_example.db")
    db = SimpleDb(None, None, None, db_path, drivername="sqlite")
    db.dev_mode = True

    db.run_direct("DROP TABLE IF EXISTS article")
    db.run_direct("""
        CREATE TABLE article (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            created_date DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            title        TEXT NOT NULL,
            body         TEXT NOT NULL,
            is_blind     BOOLEAN NOT NULL DEFAULT 0
        )
    """)

    # Several inserts in one transaction.
    with db.transaction():
        for no in range(1, 4):
            db.acquire_builder().append(
                "INSERT INTO article (title, body, is_blind) VALUES (?, ?, ?)",
                f"title {no}", f"body {no}", no == 3,
            ).insert()

    # Typed rows.
    sql = db.acquire_builder()
    sql.append("SELECT * FROM article")
    sql.append_in("WHERE id IN (?)", 1, 2, 3)
    sql.append("ORDER BY id")
    print("All articles:")
    for article in sql.select_rows(Article):
        print(f"  id={article.id}  title={article.title}  blind={article.is_blind}")

    # Scalars.
    count = db.acquire_builder().append("SELECT COUNT(*) FROM article").select_long()
    blind = db.acquire_builder().append("SELECT is_blind FROM article WHERE id = ?", 3).select_boolean()
    print(f"\nTotal: {count}, article 3 blind: {blind}")

    db.close()
    db.dispose()

    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass

    print("\nDone.")


if __name__ == "__main__":
    main()
