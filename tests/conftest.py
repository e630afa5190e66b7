"""
tests/conftest.py
"""
from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest
from flask.testing import FlaskClient

# The single-file app lives here:
from chronicle.blog import app, get_db, init_db  # noqa: WPS433 (importing from a module)


@pytest.fixture(autouse=True)
def _configure_app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Point the app at a fresh database and fresh site directories for every
    test.  Landing page and feeds depend on "the newest entry", so sharing
    one database between tests would make them order-dependent.
    """
    root = tmp_path / "site"
    for sub in ("templates/scp", "static", "resources", "logs", "db"):
        (root / sub).mkdir(parents=True)

    for key, value in {
        "TESTING": True,
        "DATABASE": str(root / "db" / "test.sqlite3"),
        "ROOT_DIR": str(root),
        "TEMPLATES_DIR": str(root / "templates"),
        "STATIC_DIR": str(root / "static"),
        "RESOURCES_DIR": str(root / "resources"),
        "LOG_DIR": str(root / "logs"),
        "BLOG_TZ": "UTC",
        "SITE_URL": "https://blog.example.com",
        "SITE_TITLE": "Test Blog",
        "SITE_AUTHOR": "Test Author",
        "SITE_EMAIL": "author@example.com",
    }.items():
        monkeypatch.setitem(app.config, key, value)

    with app.app_context():
        init_db()
    return root


@pytest.fixture
def site_root(_configure_app: Path) -> Path:
    return _configure_app


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    """
    Gives each test an application context *and* test client.

    Yields:
        `flask.testing.FlaskClient`
    """
    with app.test_client() as client:
        with app.app_context():
            yield client


# ───────────────────────── row helpers ────────────────────────────────
def add_entry(
    entry_id: int,
    *,
    title: str = "",
    next_id: int = 0,
    previous: int = 0,
    content: str = "",
    image: str = "",
) -> None:
    """Insert one entry row straight into the test database."""
    db = get_db()
    db.execute(
        """
        INSERT INTO entry (timestamp, title, next, previous, paragraph, image)
        VALUES (?,?,?,?,?,?)
        """,
        (entry_id, title, next_id, previous, content, image),
    )
    db.commit()


def add_oneoff(uid: str, *, content: str = "", image: str = "") -> None:
    db = get_db()
    db.execute(
        "INSERT INTO oneoff (uid, paragraph, image) VALUES (?,?,?)",
        (uid, content, image),
    )
    db.commit()


def add_article(
    article_id: int,
    *,
    title: str = "",
    organization: str = "",
    hyperlink: str = "",
    pdf: bytes | None = None,
) -> None:
    db = get_db()
    db.execute(
        """
        INSERT INTO articlemeta (timestamp, title, organization, hyperlink, pdf)
        VALUES (?,?,?,?,?)
        """,
        (article_id, title, organization, hyperlink, pdf),
    )
    db.commit()
