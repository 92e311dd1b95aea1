import logging
import re
import warnings

from flask import Flask, request

from gateway.core.session_transport import MAX_COOKIE_BYTES, SessionTransport


def _set_cookie_headers(response):
    return response.headers.getlist("Set-Cookie")


def test_attach_sets_hardened_cookie():
    app = Flask(__name__)
    transport = SessionTransport(max_age=604800, domain=".example.test", secure=True)

    with app.test_request_context("/"):
        response = app.make_response("ok")
        transport.attach(response, "credential-value")

    [header] = _set_cookie_headers(response)
    assert header.startswith("bndy_session=credential-value")
    assert "HttpOnly" in header
    assert "Secure" in header
    assert "SameSite=Lax" in header
    assert "Max-Age=604800" in header
    assert "Path=/" in header
    assert re.search(r"Domain=\.?example\.test", header)


def test_attach_without_domain_is_host_only():
    app = Flask(__name__)
    transport = SessionTransport(secure=False)

    with app.test_request_context("/"):
        response = app.make_response("ok")
        transport.attach(response, "v")

    [header] = _set_cookie_headers(response)
    assert "Domain=" not in header
    assert "Secure" not in header


def test_extract_reads_named_cookie():
    app = Flask(__name__)
    transport = SessionTransport(cookie_name="custom")

    with app.test_request_context("/", headers={"Cookie": "custom=abc; other=xyz"}):
        assert transport.extract(request) == "abc"

    with app.test_request_context("/", headers={"Cookie": "other=xyz"}):
        assert transport.extract(request) is None

    with app.test_request_context("/", headers={"Cookie": "custom="}):
        assert transport.extract(request) is None


def test_clear_expires_cookie_with_same_attributes():
    app = Flask(__name__)
    transport = SessionTransport(domain=".example.test")

    with app.test_request_context("/"):
        response = app.make_response("ok")
        transport.clear(response)

    [header] = _set_cookie_headers(response)
    assert header.startswith("bndy_session=")
    assert "Max-Age=0" in header
    assert re.search(r"Domain=\.?example\.test", header)
    assert "Path=/" in header


def test_attach_warns_when_credential_exceeds_cookie_limit(caplog):
    app = Flask(__name__)
    transport = SessionTransport(secure=False)
    caplog.set_level(logging.WARNING, logger="gateway.core.session_transport")

    with app.test_request_context("/"), warnings.catch_warnings():
        # Werkzeug raises its own UserWarning for oversized cookies
        warnings.simplefilter("ignore")
        transport.attach(app.make_response("ok"), "x" * (MAX_COOKIE_BYTES + 1))

    assert "over the 4093-byte cookie limit" in caplog.text
    assert "xxxx" not in caplog.text


def test_attach_silent_for_typical_credential(caplog):
    app = Flask(__name__)
    caplog.set_level(logging.WARNING, logger="gateway.core.session_transport")

    with app.test_request_context("/"):
        SessionTransport(secure=False).attach(app.make_response("ok"), "x" * 1500)

    assert caplog.text == ""
