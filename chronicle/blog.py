#!/usr/bin/env python3
"""
A single-file blog server.

Entries are keyed by their Unix timestamp and chained to their neighbours;
one-off pages are keyed by an opaque uid.  Everything is read from a SQLite
file that some other process fills.
"""

import json
import os
import random
import sqlite3
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from html import escape
from importlib.metadata import PackageNotFoundError, version
from io import BytesIO
from pathlib import Path
from time import time
from typing import DefaultDict
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click
from flask import (
    Flask,
    Response,
    abort,
    g,
    render_template_string,
    request,
    send_file,
    send_from_directory,
)
from markupsafe import Markup
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.security import safe_join

################################################################################
# Imports & constants
################################################################################

ROOT_DIR = Path(os.environ.get("BLOG_ROOT_DIR", ".")).resolve()


def _under_root(value: str) -> Path:
    """Relative settings live below ROOT_DIR, absolute ones are kept."""
    p = Path(value)
    return p if p.is_absolute() else ROOT_DIR / p


DB_FILE = _under_root(os.environ.get("BLOG_DB", "db/blog.sqlite3"))
TEMPLATES_DIR = _under_root(os.environ.get("BLOG_TEMPLATES", "templates"))
STATIC_DIR = _under_root(os.environ.get("BLOG_STATIC", "static"))
RESOURCES_DIR = _under_root(os.environ.get("BLOG_RESOURCES", "resources"))
LOG_DIR_DEFAULT = _under_root(os.environ.get("BLOG_LOG_DIR", "logs"))
ACCESS_LOG_ENABLED = os.environ.get("ACCESS_LOG_ENABLED", "1") != "0"
ACCESS_LOG_RETENTION_DAYS = int(os.environ.get("ACCESS_LOG_RETENTION_DAYS", "14"))
ACCESS_LOG_SKIP_PATHS = {"/favicon.ico", "/robots.txt"}

BLOG_TZ = os.environ.get("BLOG_TZ", "UTC")
FEED_LIMIT = int(os.environ.get("FEED_LIMIT", "1000"))

SITE_TITLE = os.environ.get("SITE_TITLE", "chronicle")
SITE_URL = os.environ.get("SITE_URL", "http://localhost:5000")
SITE_DESCRIPTION = os.environ.get("SITE_DESCRIPTION", "Musings, projects, and dispositions.")
SITE_AUTHOR = os.environ.get("SITE_AUTHOR", "")
SITE_EMAIL = os.environ.get("SITE_EMAIL", "")
FEED_CREATED = int(os.environ.get("FEED_CREATED", "1489554739"))

# paragraphs and image urls are joined by a literal backslash-n, not a newline
CONTENT_DELIM = r"\n"
# entry and article keys are SQLite INTEGERs
MAX_ID = 2**63 - 1
RFC2822_FMT = "%a, %d %b %Y %H:%M:%S %z"
ATOM_FMT = "%Y-%m-%dT%H:%M:%SZ"

WIZARD_PAGE = "christhewizardprogrammer.html"
SCP_DIR = "scp"
SCP_LANDING = "landing"
SCP_QUIPS = [
    '"Best website on the Internet!" -- My Mother',
    "It's like the official association page, only updated regularly!",
    "This site is proudly hosted on pastries.",
    "Read only? But I want to tell somebody about it!",
    "Does the webmaster know this line changes when I refresh the page?",
    '"SLOW DOWN ON ASSOCIATION ROADS!" -- A landowner, probably',
    "Packrats, cows, and hunters...oh my!",
]

try:
    __version__ = version("chronicle")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# Errors
################################################################################
class BlogError(Exception):
    """Base for failures that end one request with a short message."""

    status = 500
    public_message = "failed to build page"


class RecordNotFound(BlogError, LookupError):
    status = 404

    def __init__(self, kind: str, key):
        super().__init__(f"no {kind} for {key!r}")
        self.kind = kind
        self.key = key

    @property
    def public_message(self) -> str:
        return f"failed to retrieve {self.kind}"


class ArrayMismatch(BlogError, ValueError):
    public_message = "failed to generate content"

    def __init__(self, n_content: int, n_image: int, source: str = ""):
        msg = f"content has {n_content} paragraphs but image has {n_image} entries"
        super().__init__(f"{source}: {msg}" if source else msg)
        self.n_content = n_content
        self.n_image = n_image
        self.source = source


class UnsupportedFormat(BlogError, ValueError):
    status = 412
    public_message = "invalid feed type requested"


class StoreUnavailable(BlogError, RuntimeError):
    public_message = "content store unavailable"


class BadConfig(BlogError, ValueError):
    public_message = "server misconfigured"


################################################################################
# App
################################################################################
app = Flask(__name__, static_folder=None)
app.url_map.strict_slashes = False
app.config.update(
    DATABASE=str(DB_FILE),
    ROOT_DIR=str(ROOT_DIR),
    TEMPLATES_DIR=str(TEMPLATES_DIR),
    STATIC_DIR=str(STATIC_DIR),
    RESOURCES_DIR=str(RESOURCES_DIR),
    LOG_DIR=str(LOG_DIR_DEFAULT),
    ACCESS_LOG_ENABLED=ACCESS_LOG_ENABLED,
    ACCESS_LOG_RETENTION_DAYS=ACCESS_LOG_RETENTION_DAYS,
    BLOG_TZ=BLOG_TZ,
    FEED_LIMIT=FEED_LIMIT,
    SITE_TITLE=SITE_TITLE,
    SITE_URL=SITE_URL,
    SITE_DESCRIPTION=SITE_DESCRIPTION,
    SITE_AUTHOR=SITE_AUTHOR,
    SITE_EMAIL=SITE_EMAIL,
    FEED_CREATED=FEED_CREATED,
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)


###############################################################################
# Database helpers
###############################################################################
ENTRY_COLUMNS = "timestamp AS id, title, next, previous, paragraph AS content, image"
STORE_TABLES = ("entry", "oneoff", "articlemeta")


def get_db():
    if "db" not in g:
        try:
            g.db = sqlite3.connect(app.config["DATABASE"])
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"cannot open {app.config['DATABASE']}: {exc}") from exc
        g.db.row_factory = sqlite3.Row
    return g.db


@app.teardown_appcontext
def close_db(error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    """Create the (empty) tables.  Filling them is someone else's job."""
    db = get_db()
    db.executescript(
        """
        CREATE TABLE IF NOT EXISTS entry (
            timestamp   INTEGER PRIMARY KEY,        -- unix seconds, also the id
            title       TEXT NOT NULL DEFAULT '',
            next        INTEGER NOT NULL DEFAULT 0, -- 0 = no newer entry
            previous    INTEGER NOT NULL DEFAULT 0, -- 0 = no older entry
            paragraph   TEXT NOT NULL DEFAULT '',
            image       TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS oneoff (
            uid         TEXT PRIMARY KEY,
            paragraph   TEXT NOT NULL DEFAULT '',
            image       TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS articlemeta (
            timestamp    INTEGER PRIMARY KEY,
            title        TEXT NOT NULL DEFAULT '',
            organization TEXT NOT NULL DEFAULT '',
            hyperlink    TEXT NOT NULL DEFAULT '',
            pdf          BLOB
        );
        """
    )
    db.commit()


def check_store(path: str | os.PathLike) -> None:
    """Fail fast when the database file is missing or lacks a table."""
    path = Path(path)
    if not path.is_file():
        raise StoreUnavailable(f"database file not found: {path}")
    try:
        db = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
        try:
            names = {
                r[0]
                for r in db.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            db.close()
    except sqlite3.Error as exc:
        raise StoreUnavailable(f"cannot read {path}: {exc}") from exc
    missing = [t for t in STORE_TABLES if t not in names]
    if missing:
        raise StoreUnavailable(f"{path} is missing tables: {', '.join(missing)}")


def check_config(cfg) -> None:
    """Settings that every dated page or feed needs, checked at startup."""
    try:
        ZoneInfo(cfg["BLOG_TZ"])
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise BadConfig(f"unknown time zone BLOG_TZ={cfg['BLOG_TZ']!r}") from exc
    url = urlparse(cfg["SITE_URL"])
    if url.scheme not in ("http", "https") or not url.hostname:
        raise BadConfig(
            f"SITE_URL must be an absolute http(s) url, got {cfg['SITE_URL']!r}"
        )


def parse_id(raw: str) -> int | None:
    """A path segment as a store key, or None if it can't be one."""
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if -MAX_ID - 1 <= value <= MAX_ID else None


def _query(db, sql: str, params: tuple = ()):
    try:
        return db.execute(sql, params)
    except sqlite3.Error as exc:
        raise StoreUnavailable(f"query failed: {exc}") from exc


# -------------------------------------------------------------------------
# Entry store
# -------------------------------------------------------------------------
def get_entry(entry_id: int, *, db):
    row = _query(
        db, f"SELECT {ENTRY_COLUMNS} FROM entry WHERE timestamp = ?", (entry_id,)
    ).fetchone()
    if row is None:
        raise RecordNotFound("entry", entry_id)
    return row


def get_most_recent_entry(*, db):
    row = _query(
        db, f"SELECT {ENTRY_COLUMNS} FROM entry ORDER BY timestamp DESC LIMIT 1"
    ).fetchone()
    if row is None:
        raise RecordNotFound("entry", "latest")
    return row


def get_oneoff(uid: str, *, db):
    row = _query(
        db,
        "SELECT uid, paragraph AS content, image FROM oneoff WHERE uid = ?",
        (uid,),
    ).fetchone()
    if row is None:
        raise RecordNotFound("page", uid)
    return row


def get_history(*, db):
    """(id, title) for every entry; callers sort."""
    return _query(db, "SELECT timestamp AS id, title FROM entry").fetchall()


def get_recent_entries(limit: int, *, db):
    return _query(
        db,
        f"SELECT {ENTRY_COLUMNS} FROM entry ORDER BY timestamp DESC LIMIT ?",
        (limit,),
    ).fetchall()


def get_article_meta_list(*, db):
    return _query(
        db,
        """
        SELECT timestamp AS id, title, organization, hyperlink
          FROM articlemeta
         ORDER BY timestamp DESC
        """,
    ).fetchall()


def get_article_payload(article_id: int, *, db) -> bytes:
    if not article_id:
        raise RecordNotFound("article", article_id)
    row = _query(
        db, "SELECT pdf FROM articlemeta WHERE timestamp = ?", (article_id,)
    ).fetchone()
    if row is None or row["pdf"] is None:
        raise RecordNotFound("article", article_id)
    pdf = row["pdf"]
    return bytes(pdf) if isinstance(pdf, (bytes, memoryview)) else str(pdf).encode()


###############################################################################
# Rendering
###############################################################################
def entry_datetime(entry_id: int) -> datetime:
    """An entry id is its creation time in Unix seconds."""
    return datetime.fromtimestamp(entry_id, ZoneInfo(app.config["BLOG_TZ"]))


def entry_path(entry_id: int) -> str:
    return f"/entry/{entry_id}"


def nav_path(entry_id: int | None) -> str:
    """0 (or NULL) means there is no neighbour, so no link."""
    return entry_path(entry_id) if entry_id else ""


def split_blob(text: str | None) -> list[str]:
    return (text or "").split(CONTENT_DELIM)


def pair_blocks(
    content: str | None, image: str | None, *, source: str = ""
) -> list[tuple[str, str]]:
    """
    Turn the stored paragraph/image strings into ordered
    (paragraph, image_url) pairs.  image_url is "" when a paragraph has no
    picture.  Both sides must split into the same number of parts;
    *source* names the record in the error when they don't.
    """
    paragraphs = split_blob(content)
    images = split_blob(image)
    if len(paragraphs) != len(images):
        raise ArrayMismatch(len(paragraphs), len(images), source)
    return list(zip(paragraphs, images))


def blocks_html(blocks: list[tuple[str, str]]) -> Markup:
    # paragraph text is stored markup; urls only ever land in attributes
    parts = []
    for text, img in blocks:
        parts.append(f"<p>{text}</p>")
        if img:
            url = escape(img, quote=True)
            parts.append(f'<a href="{url}"><img class="image" src="{url}"></a>')
    return Markup("".join(parts))


def render_entry(entry) -> dict:
    html = blocks_html(
        pair_blocks(entry["content"], entry["image"], source=f"entry {entry['id']}")
    )
    created = entry_datetime(entry["id"])
    return {
        "title": entry["title"],
        "next_path": nav_path(entry["next"]),
        "prev_path": nav_path(entry["previous"]),
        "month": created.strftime("%B"),
        "day": str(created.day),
        "year": str(created.year),
        "html": html,
    }


def render_oneoff(oneoff) -> dict:
    """One-offs sit outside the chain: no neighbours, no date."""
    return {
        "title": oneoff["uid"],
        "html": blocks_html(
            pair_blocks(
                oneoff["content"], oneoff["image"], source=f"page {oneoff['uid']!r}"
            )
        ),
    }


def render_history(records) -> list[dict]:
    """
    Group (id, title) records by year, newest year first and newest entry
    first inside each year.
    """
    by_year: DefaultDict[int, list] = defaultdict(list)
    for r in records:
        by_year[entry_datetime(r["id"]).year].append(r)

    history = []
    for year in sorted(by_year, reverse=True):
        rows = sorted(by_year[year], key=lambda r: r["id"], reverse=True)
        history.append(
            {
                "year": year,
                "entries": [
                    {"title": r["title"], "path": entry_path(r["id"])} for r in rows
                ],
            }
        )
    return history


def scp_context(content: str) -> dict:
    return {"content": Markup(content), "quip": random.choice(SCP_QUIPS)}


###############################################################################
# Feeds
###############################################################################
def site_meta() -> dict:
    cfg = app.config
    return {
        "title": cfg["SITE_TITLE"],
        "link": cfg["SITE_URL"].rstrip("/"),
        "description": cfg["SITE_DESCRIPTION"],
        "author": cfg["SITE_AUTHOR"],
        "email": cfg["SITE_EMAIL"],
        "created": datetime.fromtimestamp(cfg["FEED_CREATED"], timezone.utc),
    }


def build_feed(entries, site: dict) -> dict:
    """
    Map entries (newest first) to feed items.  The description is the same
    HTML the entry page shows, so a misaligned entry fails the whole feed.
    """
    items = []
    for e in entries:
        items.append(
            {
                "title": e["title"],
                "id": str(e["id"]),
                "link": site["link"] + entry_path(e["id"]),
                "description": str(
                    blocks_html(
                        pair_blocks(e["content"], e["image"], source=f"entry {e['id']}")
                    )
                ),
                "created": datetime.fromtimestamp(e["id"], timezone.utc),
            }
        )
    updated = max((i["created"] for i in items), default=site["created"])
    return {**site, "updated": updated, "items": items}


def _rfc2822(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(RFC2822_FMT)


def _atom_ts(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(ATOM_FMT)


def _tag_uri(link: str, created: datetime) -> str:
    """RFC 4151 tag URI, e.g. tag:example.com,2017-03-15:/entry/1489554739"""
    # a scheme-less SITE_URL would otherwise parse as a bare path
    p = urlparse(link if "//" in link else f"//{link}")
    return f"tag:{p.hostname},{created:%Y-%m-%d}:{p.path}"


def _rss(feed: dict) -> str:
    """RSS 2.0 document as a single string."""
    items = []
    for it in feed["items"]:
        items.append(
            f"""
    <item>
      <title>{escape(it['title'])}</title>
      <link>{escape(it['link'])}</link>
      <guid isPermaLink="false">{escape(it['id'])}</guid>
      <pubDate>{_rfc2822(it['created'])}</pubDate>
      <description>{escape(it['description'])}</description>
    </item>"""
        )

    editor = ""
    if feed["email"]:
        who = f"{feed['email']} ({feed['author']})" if feed["author"] else feed["email"]
        editor = f"\n    <managingEditor>{escape(who)}</managingEditor>"

    return f"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0">
  <channel>
    <title>{escape(feed['title'])}</title>
    <link>{escape(feed['link'])}</link>
    <description>{escape(feed['description'])}</description>{editor}
    <pubDate>{_rfc2822(feed['created'])}</pubDate>
    <lastBuildDate>{_rfc2822(feed['updated'])}</lastBuildDate>
    <generator>chronicle</generator>
    <docs>https://validator.w3.org/feed/docs/rss2.html</docs>{"".join(items)}
  </channel>
</rss>
"""


def _atom(feed: dict) -> str:
    """Atom 1.0 document as a single string."""
    entries = []
    for it in feed["items"]:
        entries.append(
            f"""
  <entry>
    <title>{escape(it['title'])}</title>
    <updated>{_atom_ts(it['created'])}</updated>
    <id>{escape(_tag_uri(it['link'], it['created']))}</id>
    <link rel="alternate" href="{escape(it['link'])}"/>
    <summary type="html">{escape(it['description'])}</summary>
  </entry>"""
        )

    author = f"\n    <name>{escape(feed['author'] or feed['title'])}</name>"
    if feed["email"]:
        author += f"\n    <email>{escape(feed['email'])}</email>"

    return f"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>{escape(feed['title'])}</title>
  <id>{escape(feed['link'])}/</id>
  <updated>{_atom_ts(feed['updated'])}</updated>
  <subtitle>{escape(feed['description'])}</subtitle>
  <link href="{escape(feed['link'])}"/>
  <author>{author}
  </author>{"".join(entries)}
</feed>
"""


def _jsonfeed(feed: dict) -> str:
    """JSON Feed 1.1."""
    author = {"name": feed["author"] or feed["title"]}
    if feed["email"]:
        author["url"] = f"mailto:{feed['email']}"
    doc = {
        "version": "https://jsonfeed.org/version/1.1",
        "title": feed["title"],
        "home_page_url": feed["link"],
        "description": feed["description"],
        "authors": [author],
        "items": [
            {
                "id": it["id"],
                "url": it["link"],
                "title": it["title"],
                "content_html": it["description"],
                "date_published": it["created"].isoformat(),
            }
            for it in feed["items"]
        ],
    }
    return json.dumps(doc, indent=2, ensure_ascii=False)


# path parameter → (serializer, mimetype)
FEED_TYPES = {
    "atom.xml": (_atom, "application/atom+xml"),
    "rss.xml": (_rss, "application/rss+xml"),
    "jsonfeed.json": (_jsonfeed, "application/feed+json"),
}


def serialize_feed(feed: dict, fmt: str) -> bytes:
    try:
        serializer, _ = FEED_TYPES[fmt]
    except KeyError:
        raise UnsupportedFormat(f"unknown feed type {fmt!r}") from None
    return serializer(feed).encode("utf-8")


###############################################################################
# Access log
###############################################################################
_access_log_pruned_once = False


def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def _append_access_event(event: dict) -> None:
    """One JSON line per request in LOG_DIR/access-YYYYMMDD.log."""
    log_dir = Path(app.config.get("LOG_DIR") or LOG_DIR_DEFAULT)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"access-{utc_now():%Y%m%d}.log"
        with log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event, separators=(",", ":")) + "\n")
    except OSError:
        app.logger.exception("cannot write access log in %s", log_dir)
        return

    global _access_log_pruned_once
    retention_days = int(
        app.config.get("ACCESS_LOG_RETENTION_DAYS", ACCESS_LOG_RETENTION_DAYS)
    )
    if retention_days <= 0 or _access_log_pruned_once:
        return
    cutoff = (utc_now() - timedelta(days=retention_days)).date()
    for p in log_dir.glob("access-*.log"):
        try:
            day = datetime.strptime(p.stem.replace("access-", ""), "%Y%m%d").date()
        except ValueError:
            continue
        if day < cutoff:
            p.unlink(missing_ok=True)
    _access_log_pruned_once = True


@app.before_request
def start_timer():
    g._started_at = time()


@app.after_request
def log_access(resp):
    if not app.config.get("ACCESS_LOG_ENABLED", True):
        return resp
    if request.path in ACCESS_LOG_SKIP_PATHS:
        return resp

    started = getattr(g, "_started_at", None)
    _append_access_event(
        {
            "ts": utc_now().isoformat(),
            "ip": (request.access_route[0] if request.access_route else request.remote_addr)
            or "unknown",
            "m": request.method,
            "path": request.path,
            "st": resp.status_code,
            "ua": (request.user_agent.string or "")[:200],
            "dur": int((time() - started) * 1000) if started else None,
        }
    )
    return resp


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


###############################################################################
# CLI
###############################################################################
@app.cli.command("init-db")
def cli_init_db():
    """Create empty entry / oneoff / articlemeta tables."""
    init_db()
    click.secho(f"\n✅  Schema ready in {app.config['DATABASE']}", fg="green")


@app.cli.command("check")
def cli_check():
    """Verify the content store before serving."""
    try:
        check_config(app.config)
        check_store(app.config["DATABASE"])
    except BlogError as exc:
        raise click.ClickException(str(exc)) from None
    click.secho("✅  Store looks fine.", fg="green")


###############################################################################
# Templates
###############################################################################
def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


def page_ctx() -> dict:
    return {"site_title": app.config["SITE_TITLE"]}


TEMPL_PROLOG = """
<!doctype html>
<html lang="en">
<title>{{ title ~ ' – ' if title }}{{ site_title }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta charset="utf-8">
<link rel="alternate" type="application/atom+xml" href="/feeds/atom.xml" title="{{ site_title }} – Atom">
<link rel="alternate" type="application/rss+xml" href="/feeds/rss.xml" title="{{ site_title }} – RSS">
<link rel="alternate" type="application/feed+json" href="/feeds/jsonfeed.json" title="{{ site_title }} – JSON Feed">
<style>
html{font-size:62.5%;font-family:-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,"Helvetica Neue",Arial,sans-serif}
body{font-size:1.8rem;line-height:1.618;max-width:38em;margin:auto;color:#c9c9c9;background-color:#222222;padding:13px}
h1,h2,h3{line-height:1.1;font-weight:700;margin-top:3rem;margin-bottom:1.5rem}
p{margin-top:0;margin-bottom:2.5rem}
a{color:#ffffff}
img.image{height:auto;max-width:100%}
.nav{display:flex;gap:1.25rem;font-size:.9em;margin-bottom:1rem}
.entry-nav{display:flex;justify-content:space-between;margin-top:2rem}
.date{color:#888;font-size:.8em}
</style>
<body>
<div class="container">
    <h1 style="margin-top:0"><a href="/" style="text-decoration:none">{{ site_title }}</a></h1>
    <nav class="nav" aria-label="Primary">
        <a href="/history">History</a>
        <a href="/feeds/atom.xml">Feed</a>
    </nav>
    <main id="main-content" role="main">
"""

TEMPL_EPILOG = """
    </main>
    <footer style="margin-top:1.875em;padding-top:1.5em;font-size:.8em;color:#888;border-top:1px solid #444;">
        Built with chronicle v{{ version }}
    </footer>
</div>
</body>
</html>
"""

TEMPL_ENTRY = wrap("""
    <hr>
    <article class="h-entry">
        <h2 class="p-name">{{ e.title }}</h2>
        {% if e.year %}
        <div class="date">{{ e.month }} {{ e.day }}, {{ e.year }}</div>
        {% endif %}
        <div class="e-content">{{ e.html }}</div>
    </article>
    {% if e.prev_path or e.next_path %}
    <nav class="entry-nav" aria-label="Entries">
        {% if e.prev_path %}<a rel="prev" href="{{ e.prev_path }}">← Previous</a>{% else %}<span></span>{% endif %}
        {% if e.next_path %}<a rel="next" href="{{ e.next_path }}">Next →</a>{% endif %}
    </nav>
    {% endif %}
""")

TEMPL_LANDING = wrap("""
    <p style="color:#bcbcbc">{{ description }}</p>
    <hr>
    <article class="h-entry">
        <h2 class="p-name"><a href="{{ permalink }}">{{ e.title }}</a></h2>
        <div class="date">{{ e.month }} {{ e.day }}, {{ e.year }}</div>
        <div class="e-content">{{ e.html }}</div>
    </article>
    {% if e.prev_path %}
    <nav class="entry-nav" aria-label="Entries">
        <a rel="prev" href="{{ e.prev_path }}">← Previous</a>
    </nav>
    {% endif %}
""")

TEMPL_HISTORY = wrap("""
    <hr>
    <h2 style="margin-top:0">History</h2>
    {% for group in history %}
        <h3>{{ group.year }}</h3>
        <ul>
        {% for item in group.entries %}
            <li><a href="{{ item.path }}">{{ item.title }}</a></li>
        {% endfor %}
        </ul>
    {% else %}
        <p>Nothing here yet.</p>
    {% endfor %}
""")

TEMPL_ARTICLES = wrap("""
    <hr>
    <h2 style="margin-top:0">Articles</h2>
    <ul>
    {% for a in articles %}
        <li>
            <a href="/kcawd/{{ a['id'] }}">{{ a['title'] }}</a>
            {% if a['organization'] %}<span class="date">{{ a['organization'] }}</span>{% endif %}
            {% if a['hyperlink'] %}(<a href="{{ a['hyperlink'] }}" rel="noopener">original</a>){% endif %}
        </li>
    {% else %}
        <li>No articles yet.</li>
    {% endfor %}
    </ul>
""")

TEMPL_ERROR = wrap("""
    <hr>
    <h2 style="margin-top:0">{{ heading }}</h2>
    <p>{{ message }}. <a href="/">Back to the front page</a>.</p>
""")

TEMPL_SCP = """
<!doctype html>
<html lang="en">
<title>SCP</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta charset="utf-8">
<link rel="stylesheet" href="/scp/static/scp.css">
<body>
<header>
    <nav>
        <a href="/scp">Home</a>
        <a href="/scp/announcements">Announcements</a>
        <a href="/scp/faqs">FAQs</a>
        <a href="/scp/map">Map</a>
        <a href="/scp/conditions">Conditions</a>
        <a href="/scp/weather">Weather</a>
        <a href="/scp/cam">Cam</a>
    </nav>
    <p class="quip">{{ quip }}</p>
</header>
<main>{{ content }}</main>
</body>
</html>
"""


@app.context_processor
def _inject_version():
    return {"version": __version__}


###############################################################################
# Entries
###############################################################################
def _landing():
    entry = get_most_recent_entry(db=get_db())
    return render_template_string(
        TEMPL_LANDING,
        e=render_entry(entry),
        permalink=entry_path(entry["id"]),
        description=app.config["SITE_DESCRIPTION"],
        **page_ctx(),
    )


@app.route("/")
def index():
    return _landing()


@app.route("/entry/<entry_id>")
def entry_detail(entry_id):
    eid = parse_id(entry_id)
    if eid is None:
        app.logger.warning("invalid entry id %r", entry_id)
        abort(400)
    view = render_entry(get_entry(eid, db=get_db()))
    return render_template_string(TEMPL_ENTRY, e=view, title=view["title"], **page_ctx())


@app.route("/history")
def history():
    groups = render_history(get_history(db=get_db()))
    return render_template_string(
        TEMPL_HISTORY, history=groups, title="History", **page_ctx()
    )


###############################################################################
# Feeds
###############################################################################
@app.route("/feeds", defaults={"feed_type": ""})
@app.route("/feeds/<feed_type>")
def feed(feed_type):
    if not feed_type:
        app.logger.warning("feed requested without a type")
        return _short_error("No feed type", "no feed type specified", 428)
    if feed_type not in FEED_TYPES:
        raise UnsupportedFormat(f"unknown feed type {feed_type!r}")

    entries = get_recent_entries(app.config["FEED_LIMIT"], db=get_db())
    doc = build_feed(entries, site_meta())
    return Response(serialize_feed(doc, feed_type), mimetype=FEED_TYPES[feed_type][1])


###############################################################################
# Articles
###############################################################################
@app.route("/kcawd")
def articles():
    rows = get_article_meta_list(db=get_db())
    return render_template_string(
        TEMPL_ARTICLES, articles=rows, title="Articles", **page_ctx()
    )


@app.route("/kcawd/<article_id>")
def article_pdf(article_id):
    aid = parse_id(article_id)
    if aid is None:
        app.logger.warning("invalid article id %r", article_id)
        abort(404)
    pdf = get_article_payload(aid, db=get_db())
    return send_file(BytesIO(pdf), mimetype="application/pdf", download_name=f"{aid}.pdf")


###############################################################################
# SCP microsite + static pages
###############################################################################
def _scp_page(name: str):
    base = Path(app.config["TEMPLATES_DIR"]) / SCP_DIR
    path = safe_join(str(base), f"{name}.html")
    if path is None:
        raise RecordNotFound("scp page", name)
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise RecordNotFound("scp page", name) from exc
    return render_template_string(TEMPL_SCP, **scp_context(content))


@app.route("/scp")
def scp_home():
    return _scp_page(SCP_LANDING)


@app.route("/scp/<page>")
def scp_page(page):
    try:
        return _scp_page(page)
    except RecordNotFound as exc:
        app.logger.warning("%s, serving scp home", exc)
        return scp_home()


@app.route("/scp/static/<item>")
@app.route("/static/<item>")
def static_file(item):
    return send_from_directory(app.config["STATIC_DIR"], item)


@app.route("/scp/images/<folder>/<item>")
@app.route("/images/<folder>/<item>")
@app.route("/images/<item>", defaults={"folder": None})
def image_file(item, folder):
    rel = f"{folder}/{item}" if folder else item
    return send_from_directory(app.config["RESOURCES_DIR"], rel)


@app.route("/wizardprogramming")
def wizard_programming():
    return send_from_directory(app.config["TEMPLATES_DIR"], WIZARD_PAGE)


@app.route("/robots.txt")
def robots():
    return send_from_directory(app.config["ROOT_DIR"], "robots.txt")


###############################################################################
# One-off pages
###############################################################################
@app.route("/<uid>")
def oneoff(uid):
    """A one-off page, or the landing page when there is no usable one."""
    try:
        view = render_oneoff(get_oneoff(uid, db=get_db()))
    except BlogError as exc:
        app.logger.warning("one-off %r unavailable, serving landing page: %s", uid, exc)
        return _landing()
    return render_template_string(TEMPL_ENTRY, e=view, title=view["title"], **page_ctx())


###############################################################################
# Error pages
###############################################################################
def _short_error(heading: str, message: str, status: int):
    return render_template_string(
        TEMPL_ERROR, heading=heading, message=message, title=heading, **page_ctx()
    ), status


@app.errorhandler(BlogError)
def blog_error(exc):
    """Log the details, show the client only a status and a short message."""
    if exc.status >= 500:
        app.logger.error("%s %s failed: %s", request.method, request.path, exc)
    else:
        app.logger.warning("%s %s: %s", request.method, request.path, exc)
    heading = {404: "Page not found", 412: "Invalid request"}.get(
        exc.status, "Something went wrong"
    )
    return _short_error(heading, exc.public_message, exc.status)


@app.errorhandler(HTTPException)
def http_error(exc):
    return _short_error(exc.name, exc.description.rstrip("."), exc.code)


@app.errorhandler(500)
def internal_error(exc):
    app.logger.error("%s %s: unhandled error", request.method, request.path)
    return _short_error("Internal Server Error", "Our fault, not yours", 500)


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    try:
        check_config(app.config)
        check_store(app.config["DATABASE"])
    except BlogError as exc:
        raise SystemExit(f"refusing to start: {exc}")
    app.run(debug=True)
