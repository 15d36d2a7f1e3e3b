"""Test webhook HMAC signing and verification."""
import base64
import hashlib
import hmac

import pytest

from storelink.events import sign_payload, verify_signature

SECRET = "whsec-test"
BODY = b'{"id": 42, "title": "Snowboard"}'


def test_sign_matches_reference_hmac():
    expected = base64.b64encode(hmac.new(SECRET.encode(), BODY, hashlib.sha256).digest()).decode()
    assert sign_payload(BODY, SECRET) == expected


def test_str_and_bytes_bodies_agree():
    assert sign_payload(BODY.decode(), SECRET) == sign_payload(BODY, SECRET)


def test_verify_accepts_valid_signature():
    assert verify_signature(BODY, sign_payload(BODY, SECRET), SECRET)


def test_verify_rejects_modified_body():
    signature = sign_payload(BODY, SECRET)
    assert not verify_signature(BODY + b" ", signature, SECRET)


def test_verify_rejects_wrong_secret():
    assert not verify_signature(BODY, sign_payload(BODY, "other"), SECRET)


@pytest.mark.parametrize("signature", [None, "", "not-base64", "ünïcode", "A" * 44])
def test_verify_rejects_bad_signatures(signature):
    assert verify_signature(BODY, signature, SECRET) is False


@pytest.mark.parametrize("secret", [None, ""])
def test_verify_without_secret_is_false(secret):
    assert verify_signature(BODY, sign_payload(BODY, "x"), secret) is False


def test_verify_none_body():
    assert verify_signature(None, "abc", SECRET) is False
