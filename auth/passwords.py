"""
auth/passwords.py -- Password hashing and verification (argon2id).

Security design decisions:
  argon2id via argon2-cffi's PasswordHasher. It is memory-hard, so GPU/ASIC
  brute force is expensive. Every hash() call draws a fresh random salt; the
  encoded result ($argon2id$v=19$m=...,t=...,p=...$salt$digest) carries the
  salt and cost parameters, so verify() needs nothing but the stored string.

  verify_password() never raises. Mismatch, a corrupted stored hash, and a
  non-string argument all return False -- callers cannot tell them apart.
  The final digest comparison happens inside libargon2 in constant time.

  DUMMY_HASH is computed once at import so the first login of a process is
  not measurably slower. Callers verify against it when the account does not
  exist, which keeps "no such user" and "wrong password" equally slow.

Cost parameters come from core.config.get_settings() so tests can lower them
through ARGON2_* environment variables.

Layer rule: no imports from api/, web/, or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from core.config import get_settings
from core.errors import ValidationError

logger = logging.getLogger("webbase.auth")

_settings = get_settings()

_HASHER = PasswordHasher(
    time_cost=_settings.argon2_time_cost,
    memory_cost=_settings.argon2_memory_cost,
    parallelism=_settings.argon2_parallelism,
)


def hash_password(plain: str) -> str:
    """Return an encoded argon2id hash of the plaintext password.

    Raises ValidationError for an empty password. Length policy (minimum and
    maximum) is enforced where input arrives, see auth/service.py.
    """
    if not isinstance(plain, str) or not plain:
        raise ValidationError("Password must not be empty.")
    try:
        return _HASHER.hash(plain)
    except UnicodeEncodeError:
        raise ValidationError("Password contains characters that cannot be encoded.") from None


def verify_password(plain: str, hashed: str) -> bool:
    """Return True only if plain matches the encoded hash."""
    if not isinstance(plain, str) or not isinstance(hashed, str) or not hashed:
        return False
    try:
        return _HASHER.verify(hashed, plain)
    except (VerificationError, InvalidHashError, ValueError):
        # ValueError covers UnicodeEncodeError from a non-ASCII stored hash
        # or a password holding lone surrogates.
        return False


def needs_rehash(hashed: str) -> bool:
    """Return True if the hash was produced with different cost parameters."""
    try:
        return _HASHER.check_needs_rehash(hashed)
    except (InvalidHashError, ValueError):
        return False


DUMMY_HASH: str = hash_password("webbase_timing_dummy")
