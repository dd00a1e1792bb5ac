"""Shared fixtures: a fresh store, loaded templates and a WSGI driver."""

import io
import urllib.parse

import pytest

import rsvp_app


@pytest.fixture(autouse=True)
def store(monkeypatch):
    """Give every test its own empty response store."""
    fresh = rsvp_app.RsvpStore()
    monkeypatch.setattr(rsvp_app, "responses", fresh)
    return fresh


@pytest.fixture
def loaded_templates(monkeypatch):
    monkeypatch.setattr(rsvp_app, "templates", rsvp_app.templates)
    return rsvp_app.load_templates()


@pytest.fixture
def call_app(loaded_templates):
    """Drive the WSGI application in-process. Returns (status, headers, body)."""

    def _call(path, method="GET", form=None, raw_body=None, content_length=None):
        if raw_body is None:
            body = urllib.parse.urlencode(form or {}).encode("utf-8")
        else:
            body = raw_body
        if content_length is None:
            content_length = str(len(body))
        environ = {
            "REQUEST_METHOD": method,
            "PATH_INFO": path,
            "CONTENT_TYPE": "application/x-www-form-urlencoded",
            "CONTENT_LENGTH": content_length,
            "wsgi.input": io.BytesIO(body),
        }
        captured = {}

        def start_response(status, headers):
            captured["status"] = status
            captured["headers"] = dict(headers)

        chunks = rsvp_app.application(environ, start_response)
        return captured["status"], captured["headers"], b"".join(chunks).decode("utf-8")

    return _call
