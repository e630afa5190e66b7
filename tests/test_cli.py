"""
tests/test_cli.py
"""
from __future__ import annotations

import sqlite3

from chronicle.blog import app


def test_init_db_creates_schema(tmp_path, monkeypatch):
    target = tmp_path / "fresh.sqlite3"
    monkeypatch.setitem(app.config, "DATABASE", str(target))

    result = app.test_cli_runner().invoke(args=["init-db"])
    assert result.exit_code == 0, result.output
    assert "Schema ready" in result.output

    con = sqlite3.connect(target)
    names = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    con.close()
    assert {"entry", "oneoff", "articlemeta"} <= names


def test_check_passes_on_good_store():
    result = app.test_cli_runner().invoke(args=["check"])
    assert result.exit_code == 0, result.output
    assert "Store looks fine" in result.output


def test_check_fails_on_missing_store(tmp_path, monkeypatch):
    monkeypatch.setitem(app.config, "DATABASE", str(tmp_path / "absent.sqlite3"))
    result = app.test_cli_runner().invoke(args=["check"])
    assert result.exit_code != 0
    assert "database file not found" in result.output


def test_check_fails_on_unknown_time_zone(monkeypatch):
    monkeypatch.setitem(app.config, "BLOG_TZ", "Mars/Olympus_Mons")
    result = app.test_cli_runner().invoke(args=["check"])
    assert result.exit_code != 0
    assert "BLOG_TZ" in result.output


def test_check_fails_on_scheme_less_site_url(monkeypatch):
    monkeypatch.setitem(app.config, "SITE_URL", "blog.example.com")
    result = app.test_cli_runner().invoke(args=["check"])
    assert result.exit_code != 0
    assert "SITE_URL" in result.output
