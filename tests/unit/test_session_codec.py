import time
from dataclasses import replace
from datetime import timedelta

import jwt
import pytest

from gateway.core.exceptions import Expired, InvalidSignature
from gateway.core.session_codec import SessionCodec, SessionRecord

SECRET = "k" * 48


def make_record(**overrides) -> SessionRecord:
    base = dict(
        subject_id="0a1b2c3d-4e5f-6789-abcd-ef0123456789",
        username="google_1234567890",
        email="alice@example.com",
        access_token="access-token",
        id_token="id-token",
        refresh_token="refresh-token",
    )
    base.update(overrides)
    return SessionRecord(**base)


@pytest.fixture()
def codec():
    return SessionCodec(SECRET)


def test_sign_then_verify_round_trips_record(codec):
    issued_at = int(time.time()) - 60
    record = make_record(issued_at=issued_at)

    decoded = codec.verify(codec.sign(record))

    assert decoded == replace(record, expires_at=issued_at + 7 * 24 * 3600)


def test_sign_defaults_issued_at_to_now(codec):
    before = int(time.time())
    decoded = codec.verify(codec.sign(make_record()))

    assert before <= decoded.issued_at <= int(time.time())
    assert decoded.expires_at - decoded.issued_at == 7 * 24 * 3600


def test_sign_recomputes_expiry_from_issued_at(codec):
    record = make_record(issued_at=int(time.time()), expires_at=int(time.time()) + 10 ** 9)
    decoded = codec.verify(codec.sign(record))
    assert decoded.expires_at == record.issued_at + codec.validity_seconds


def test_sign_uses_hs256(codec):
    credential = codec.sign(make_record())
    assert jwt.get_unverified_header(credential)["alg"] == "HS256"


def test_verify_rejects_other_secret(codec):
    credential = SessionCodec("x" * 48).sign(make_record())

    with pytest.raises(InvalidSignature):
        codec.verify(credential)


def test_verify_rejects_tampered_payload(codec):
    header, payload, signature = codec.sign(make_record()).split(".")
    forged = jwt.encode({"sub": "attacker", "iat": int(time.time()), "exp": int(time.time()) + 60}, "other")
    forged_payload = forged.split(".")[1]

    with pytest.raises(InvalidSignature):
        codec.verify(f"{header}.{forged_payload}.{signature}")


def test_verify_rejects_unsigned_token(codec):
    now = int(time.time())
    unsigned = jwt.encode({"sub": "attacker", "iat": now, "exp": now + 60}, None, algorithm="none")

    with pytest.raises(InvalidSignature):
        codec.verify(unsigned)


@pytest.mark.parametrize("credential", ["", "garbage", "a.b.c"])
def test_verify_rejects_malformed(codec, credential):
    with pytest.raises(InvalidSignature):
        codec.verify(credential)


def test_verify_rejects_missing_subject(codec):
    now = int(time.time())
    credential = jwt.encode({"iat": now, "exp": now + 60}, SECRET, algorithm="HS256")

    with pytest.raises(InvalidSignature):
        codec.verify(credential)


def test_verify_rejects_elapsed_validity(codec):
    eight_days_ago = int(time.time()) - 8 * 24 * 3600
    credential = codec.sign(make_record(issued_at=eight_days_ago))

    with pytest.raises(Expired) as exc:
        codec.verify(credential)
    assert exc.value.error_code == "session_expired"


def test_verify_rejects_elapsed_validity_even_with_valid_signature_and_future_exp(codec):
    eight_days_ago = int(time.time()) - 8 * 24 * 3600
    credential = jwt.encode(
        {"sub": "user", "iat": eight_days_ago, "exp": int(time.time()) + 3600},
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(Expired):
        codec.verify(credential)


def test_custom_validity_and_clock():
    now = [1_700_000_000.0]
    codec = SessionCodec(SECRET, validity=timedelta(hours=1), clock=lambda: now[0])
    record = make_record(issued_at=int(time.time()))
    credential = codec.sign(record)

    now[0] = time.time()
    assert codec.verify(credential).subject_id == record.subject_id

    now[0] = time.time() + 3601
    with pytest.raises(Expired):
        codec.verify(credential)


def test_empty_secret_refused():
    with pytest.raises(ValueError):
        SessionCodec("")


def test_repr_does_not_leak_secret(codec):
    assert SECRET not in repr(codec)
