"""
tests/test_passwords.py -- Unit tests for auth/passwords.py (argon2id).

Covers:
  - Hash format and per-call salting
  - verify_password() accepts the right password and rejects everything else
  - verify_password() never raises on garbage input
  - needs_rehash() detects changed cost parameters
"""

from __future__ import annotations

import pytest
from argon2 import PasswordHasher

from auth.passwords import DUMMY_HASH, hash_password, needs_rehash, verify_password
from core.errors import ValidationError


def test_hash_is_argon2id_encoded():
    hashed = hash_password("s3cret-pass")
    assert hashed.startswith("$argon2id$")
    assert "s3cret-pass" not in hashed


def test_same_password_hashes_differently():
    """Each call draws a fresh salt."""
    assert hash_password("repeat-me") != hash_password("repeat-me")


def test_verify_round_trip():
    hashed = hash_password("hunter2-hunter2")
    assert verify_password("hunter2-hunter2", hashed) is True
    assert verify_password("hunter2-hunter3", hashed) is False


def test_unicode_password():
    hashed = hash_password("pässwörd-✓")
    assert verify_password("pässwörd-✓", hashed) is True
    assert verify_password("passwörd-✓", hashed) is False


@pytest.mark.parametrize(
    "bad_hash",
    [
        "",
        "not-a-hash",
        "$argon2id$v=19$garbage",
        "$2b$12$abcdefghijklmnopqrstuv",
        "$argon2id$v=19$m=65536,t=3,p=4$\u00e9$\u00e9",
    ],
)
def test_verify_never_raises_on_malformed_hash(bad_hash):
    assert verify_password("whatever", bad_hash) is False


def test_verify_rejects_non_string_input():
    assert verify_password(None, DUMMY_HASH) is False  # type: ignore[arg-type]
    assert verify_password("x", None) is False  # type: ignore[arg-type]


def test_verify_rejects_unencodable_password():
    """A lone surrogate cannot be UTF-8 encoded; verify reports a mismatch."""
    assert verify_password("\ud800", hash_password("Secret123!")) is False


def test_unencodable_password_rejected():
    with pytest.raises(ValidationError):
        hash_password("abc\ud800def")


def test_empty_password_rejected():
    with pytest.raises(ValidationError):
        hash_password("")


def test_needs_rehash_false_for_current_parameters():
    assert needs_rehash(hash_password("fresh-enough")) is False


def test_needs_rehash_true_for_other_parameters():
    old = PasswordHasher(time_cost=2, memory_cost=2048, parallelism=1).hash("legacy-pass")
    assert needs_rehash(old) is True
    # Still verifiable: parameters travel inside the encoded hash.
    assert verify_password("legacy-pass", old) is True


def test_needs_rehash_false_for_garbage():
    assert needs_rehash("not-a-hash") is False
