"""
auth/passwords.py -- Credential hashing and verification (bcrypt).

Security design decisions:
  bcrypt is used directly rather than through passlib. passlib's wrap-bug
  detection builds a password longer than 72 bytes, which bcrypt 4.x rejects
  with an explicit error.

  The cost factor comes from Settings.bcrypt_rounds (default 10). The salt and
  the cost are embedded in the output ("$2b$10$<salt><digest>"), so nothing
  besides the hash string needs to be stored.

  verify_password() separates "wrong password" (returns False) from "cannot
  verify" (raises CredentialHashError). The second is an internal fault and
  must not be reported to the caller as bad credentials.

  equalize_timing() burns one bcrypt verification against a dummy hash so
  that login with an unknown email costs the same as login with a wrong
  password. Without it, response time reveals which emails are registered.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import bcrypt

from auth.errors import CredentialHashError
from core.config import get_settings

# bcrypt only looks at the first 72 bytes of the input.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises CredentialHashError if bcrypt rejects the input (e.g. a password
    longer than 72 bytes on bcrypt >= 4.1). The API layer caps password
    length well before that point.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    try:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")
    except ValueError as exc:
        raise CredentialHashError("bcrypt could not hash the password") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the stored hash, False if it does not.

    bcrypt.checkpw recomputes the digest with the salt and cost embedded in
    the hash and compares in constant time. A malformed hash raises
    CredentialHashError instead of returning False.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as exc:
        raise CredentialHashError("stored credential hash is malformed") from exc


def exceeds_bcrypt_limit(plain: str) -> bool:
    """Return True if bcrypt would refuse the password as too long."""
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


# Computed once at import so the first unknown-email login is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("sessionauth_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Run a throwaway verification with the same cost as a real one.

    The input is cut to bcrypt's 72-byte limit first, so an oversized
    password costs the same as any other and never raises.
    """
    bcrypt.checkpw(plain.encode("utf-8")[:MAX_PASSWORD_BYTES], _DUMMY_HASH.encode("utf-8"))
