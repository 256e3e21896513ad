from __future__ import annotations

from eventdesk.auth import hash_password, verify_password


def test_hash_and_verify_password():
    encoded = hash_password("s3cret-pass")
    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_password("s3cret-pass", encoded)
    assert not verify_password("wrong", encoded)


def test_hash_uses_random_salt():
    assert hash_password("same") != hash_password("same")
    assert hash_password("same", salt="abc") == hash_password("same", salt="abc")


def test_verify_password_rejects_malformed_hashes():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "")
    assert not verify_password("anything", "md5$1$salt$abc")
