import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from passlib.context import CryptContext
from ..config import settings

ALGO = "HS256"
pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(p: str) -> str:
    return pwd.hash(p)


def verify_password(p: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    return pwd.verify(p, hashed)


def create_access_token(sub: str, role: str, teacher_id: int | None = None) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRES_MIN)
    payload = {"sub": sub, "role": role, "exp": exp}
    if teacher_id is not None:
        payload["teacherId"] = teacher_id
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGO)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
    except JWTError:
        return None


def new_verification_token() -> tuple[str, str]:
    """Return ``(token, sha256_hex)``; only the hash is ever persisted."""
    token = secrets.token_hex(32)
    return token, hash_verification_token(token)


def hash_verification_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def temp_password() -> str:
    return secrets.token_urlsafe(6)
