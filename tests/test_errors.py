"""
tests/test_errors.py
"""
from __future__ import annotations

import chronicle.blog as blog
from chronicle.blog import app


def test_404_custom_page(client):
    """
    Any unknown multi-segment URL yields the themed “Page not found” page.
    """
    resp = client.get("/this/route/does/not/exist")
    assert resp.status_code == 404
    # sanity-check that we really rendered *our* template, not Werkzeug’s
    assert b"Not Found" in resp.data
    # site title appears in the heading
    assert b"Test Blog" in resp.data


def test_500_handler_renders_friendly_page(client, monkeypatch):
    """
    Temporarily replace ``history`` with a view that crashes, but disable
    exception propagation so the global 500-handler can render the page.
    """
    def _boom():
        raise RuntimeError("kaboom!")

    monkeypatch.setitem(app.view_functions, "history", _boom)
    monkeypatch.setitem(app.config, "PROPAGATE_EXCEPTIONS", False)

    resp = client.get("/history")
    assert resp.status_code == 500
    assert b"Internal Server Error" in resp.data
    assert b"kaboom" not in resp.data


def test_store_failure_is_generic_500(client, monkeypatch):
    """Storage errors are logged, the client only sees a short message."""
    monkeypatch.setitem(app.config, "DATABASE", "/nonexistent/dir/blog.sqlite3")
    blog.close_db()  # drop any cached connection so get_db() reconnects
    resp = client.get("/history")
    assert resp.status_code == 500
    assert b"content store unavailable" in resp.data
    assert b"nonexistent" not in resp.data


def test_errors_are_logged_with_identifier(client, caplog):
    resp = client.get("/entry/1234567")
    assert resp.status_code == 404
    assert any("1234567" in r.getMessage() for r in caplog.records)


def test_blog_errors_carry_status():
    assert blog.RecordNotFound("entry", 1).status == 404
    assert blog.UnsupportedFormat("x").status == 412
    assert blog.ArrayMismatch(2, 1).status == 500
    assert blog.StoreUnavailable("x").status == 500
    assert isinstance(blog.RecordNotFound("entry", 1), LookupError)
    assert isinstance(blog.ArrayMismatch(2, 1), ValueError)


def test_mismatch_names_its_record():
    exc = blog.ArrayMismatch(2, 1, "entry 1700000000")
    assert str(exc).startswith("entry 1700000000: ")
    assert "2 paragraphs" in str(exc)
    assert str(blog.ArrayMismatch(2, 1)).startswith("content has")
