import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from shop_assistant.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def create_access_token(
    user_id: int,
    username: str,
    account_type: str,
    parent_user_id: int | None = None,
    role: str | None = None,
) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.access_token_expire_days)
    payload = {
        "sub": str(user_id),
        "username": username,
        "type": account_type,
        "parentUserId": parent_user_id,
        "role": role,
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])


def create_admin_token(admin_id: int, username: str, role: str) -> str:
    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.access_token_expire_days)
    payload = {"sub": str(admin_id), "username": username, "role": role, "type": "admin", "exp": expires_at}
    return jwt.encode(payload, settings.admin_secret_key, algorithm=settings.algorithm)


def decode_admin_token(token: str) -> dict:
    return jwt.decode(token, settings.admin_secret_key, algorithms=[settings.algorithm])


def generate_token_secret() -> str:
    return secrets.token_urlsafe(48)


def generate_invite_code(length: int = 6) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(f"{raw_token}:{settings.secret_key}".encode("utf-8")).hexdigest()
