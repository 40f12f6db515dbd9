from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import bcrypt
import jwt

from app.config import get_jwt_algorithm, get_jwt_secret, get_token_ttl
from app.errors import Unauthenticated
from app.models import ROLES

BCRYPT_MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class Identity:
    id: int
    role: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_token(identity: Identity, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "id": identity.id,
        "role": identity.role,
        "iat": issued_at,
        "exp": issued_at + get_token_ttl(),
    }
    return jwt.encode(claims, get_jwt_secret(), algorithm=get_jwt_algorithm())


def decode_token(token: str) -> Identity:
    try:
        claims = jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=[get_jwt_algorithm()],
            options={"require": ["exp", "iat"]},
        )
    except jwt.PyJWTError as exc:
        raise Unauthenticated("Invalid or expired token") from exc
    user_id = claims.get("id")
    role = claims.get("role")
    if not isinstance(user_id, int) or isinstance(user_id, bool) or role not in ROLES:
        raise Unauthenticated("Invalid or expired token")
    return Identity(id=user_id, role=role)


def parse_authorization_header(header: str | None) -> Identity:
    if not header:
        raise Unauthenticated("Missing Authorization header")
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise Unauthenticated("Invalid Authorization header")
    return decode_token(token.strip())
