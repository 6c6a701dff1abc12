import pytest

from simpledb import SimpleDb

ARTICLE_DDL = """
CREATE TABLE article (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    created_date  DATETIME NOT NULL,
    modified_date DATETIME NOT NULL,
    title         TEXT NOT NULL,
    body          TEXT NOT NULL,
    is_blind      BOOLEAN NOT NULL DEFAULT 0
)
"""


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def db(db_path):
    simple_db = SimpleDb(None, None, None, db_path, drivername="sqlite")
    simple_db.run_direct(ARTICLE_DDL)

    # Six articles; the last three are blind.
    for no in range(1, 7):
        simple_db.run_direct(
            "INSERT INTO article (created_date, modified_date, title, body, is_blind) "
            "VALUES (CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?, ?)",
            f"title {no}",
            f"body {no}",
            no > 3,
        )

    yield simple_db

    if simple_db.has_connection:
        simple_db.close()
    simple_db.dispose()
