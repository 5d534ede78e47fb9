"""
auth/tokens.py -- JWT and password hashing primitives.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the subject (username), the role
       set at issue time, iat and exp. A token is a signed snapshot, not a
       live view: verification never consults the repository, so a role
       revoked after login stays visible until the token expires. Rotating
       SECRET_KEY is the only way to invalidate every token at once.

  Passwords: bcrypt used directly (no passlib wrapper). The cost factor comes
       from configuration, never from a caller, so every stored hash is
       comparably expensive to attack. DUMMY_HASH enables timing
       equalization in AuthService.login() so response time does not reveal
       whether a username exists.

These functions are synchronous and CPU-bound where bcrypt is involved.
AuthService (auth/service.py) runs them off the event loop.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import InvalidRole, InvalidToken, ValidationError
from auth.models import Role, TokenPayload, normalize_roles

ALGORITHM = "HS256"
BCRYPT_ROUNDS = 10
# bcrypt hashes at most this many bytes of input.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def check_password_length(plain: str) -> None:
    """Raise ValidationError if plain is longer than bcrypt can hash.

    The limit is in UTF-8 bytes, not characters: 40 accented characters
    already exceed it. bcrypt 5 raises on longer input; older releases
    silently truncated it.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")


def hash_password(plain: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValidationError for a password over MAX_PASSWORD_BYTES.
    """
    check_password_length(plain)
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error, and so
    does a password too long to have been hashed in the first place.
    """
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at import so the first login attempt is not measurably slower
# than later ones. Cost 10 matches the default BCRYPT_ROUNDS.
DUMMY_HASH: str = hash_password("snapp_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    subject: str,
    roles: Iterable[Role],
    secret_key: str,
    expire_seconds: int,
    now: datetime | None = None,
) -> str:
    """Encode a signed JWT carrying the subject and its role set.

    Args:
        subject:        User id (the username).
        roles:          Roles held at this instant. Frozen into the token.
        secret_key:     HMAC signing key.
        expire_seconds: Lifetime of the token.
        now:            Issue time; defaults to the current UTC time. Tests
                        pass a past instant to mint already-expired tokens.
    """
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "roles": [Role(r).value for r in roles],
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=expire_seconds)).timestamp()),
    }
    return jwt.encode(payload, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> TokenPayload:
    """Verify a JWT and return its claims.

    Raises InvalidToken for a bad signature, a malformed token, an expired
    token, or claims that are missing, ill-typed, or name an unknown role.
    """
    try:
        claims = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(f"token rejected: {exc}") from exc

    sub = claims.get("sub")
    roles = claims.get("roles")
    iat = claims.get("iat")
    exp = claims.get("exp")
    if not isinstance(sub, str) or not sub:
        raise InvalidToken("missing subject claim")
    if not isinstance(roles, list):
        raise InvalidToken("missing roles claim")
    if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
        raise InvalidToken("missing timestamp claims")
    try:
        parsed_roles = normalize_roles(roles)
    except InvalidRole as exc:
        raise InvalidToken("unknown role in token") from exc

    return TokenPayload(
        subject=sub,
        roles=tuple(parsed_roles),
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )
