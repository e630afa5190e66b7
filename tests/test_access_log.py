"""
tests/test_access_log.py
"""
from __future__ import annotations

import datetime as _dt
import json
from pathlib import Path

import pytest

import chronicle.blog as blog
from chronicle.blog import app


def _log_lines(log_dir: Path) -> list[dict]:
    lines = []
    for p in sorted(log_dir.glob("access-*.log")):
        lines += [json.loads(ln) for ln in p.read_text(encoding="utf-8").splitlines()]
    return lines


@pytest.fixture
def log_dir(site_root: Path) -> Path:
    return site_root / "logs"


def test_requests_are_logged_daily(client, log_dir, monkeypatch):
    fixed = _dt.datetime(2099, 1, 2, 3, 4, 5, tzinfo=_dt.timezone.utc)
    monkeypatch.setattr(blog, "utc_now", lambda: fixed)

    client.get("/history")
    client.get("/entry/1")

    assert (log_dir / "access-20990102.log").exists()
    events = _log_lines(log_dir)
    assert [(e["m"], e["path"], e["st"]) for e in events] == [
        ("GET", "/history", 200),
        ("GET", "/entry/1", 404),
    ]
    assert events[0]["ts"] == fixed.isoformat()
    assert isinstance(events[0]["dur"], int)


def test_robots_is_not_logged(client, log_dir, site_root):
    (site_root / "robots.txt").write_text("User-agent: *\n")
    client.get("/robots.txt")
    assert _log_lines(log_dir) == []


def test_access_log_can_be_disabled(client, log_dir, monkeypatch):
    monkeypatch.setitem(app.config, "ACCESS_LOG_ENABLED", False)
    client.get("/history")
    assert _log_lines(log_dir) == []


def test_old_logs_are_pruned_once(client, log_dir, monkeypatch):
    monkeypatch.setattr(blog, "_access_log_pruned_once", False)
    monkeypatch.setitem(app.config, "ACCESS_LOG_RETENTION_DAYS", 7)
    stale = log_dir / "access-20000101.log"
    stale.write_text("{}\n")
    keep = log_dir / "notes.log"
    keep.write_text("hands off\n")

    client.get("/history")

    assert not stale.exists()
    assert keep.exists()
    assert blog._access_log_pruned_once is True
