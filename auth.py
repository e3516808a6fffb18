import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError

import config
from database import collection, create_document, serialize, to_object_id
from errors import (
    AccountBlocked,
    EmailTaken,
    Forbidden,
    InvalidCredentials,
    InvalidInput,
    RateLimited,
    Unauthenticated,
)
from schemas import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)
auth_scheme = HTTPBearer(auto_error=False)

SELF_REGISTER_ROLES = ("customer", "beekeeper")
MIN_PASSWORD_LENGTH = 6

# Simple in-memory rate limiting for login (per-IP)
rate_store: Dict[str, List[float]] = {}


def check_rate_limit(ip: str):
    now = datetime.now().timestamp()
    bucket = rate_store.get(ip, [])
    # drop old timestamps
    bucket = [t for t in bucket if now - t <= config.LOGIN_RATE_LIMIT_WINDOW_SEC]
    if len(bucket) >= config.LOGIN_RATE_LIMIT_MAX:
        logger.warning(f"Login rate limit hit for {ip}")
        raise RateLimited()
    bucket.append(now)
    rate_store[ip] = bucket


# Utilities
class TokenData(BaseModel):
    user_id: str
    role: str


def _encode(user_id: str, role: str, token_type: str, expires_minutes: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode = {"sub": user_id, "role": role, "type": token_type, "exp": expire}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALG)


def create_access_token(user_id: str, role: str, expires_minutes: int = None) -> str:
    return _encode(user_id, role, "access", expires_minutes or config.TOKEN_EXPIRE_MIN)


def create_refresh_token(user_id: str, role: str, expires_minutes: int = None) -> str:
    return _encode(user_id, role, "refresh", expires_minutes or config.REFRESH_TOKEN_EXPIRE_MIN)


def decode_token(token: str, expected_type: str = "access") -> TokenData:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
    except JWTError:
        raise Unauthenticated("Invalid token")
    user_id = payload.get("sub")
    if user_id is None or payload.get("type") != expected_type:
        raise Unauthenticated("Invalid token")
    return TokenData(user_id=user_id, role=payload.get("role", ""))


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def load_active_user(user_id: str) -> dict:
    """Fetch the account behind a credential; it must exist and not be blocked."""
    try:
        oid = to_object_id(user_id)
    except InvalidInput:
        raise Unauthenticated("Invalid token")
    user = collection("user").find_one({"_id": oid})
    if not user:
        raise Unauthenticated("User not found")
    if user.get("is_blocked"):
        raise AccountBlocked()
    return serialize(user)


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> dict:
    if credentials is None:
        raise Unauthenticated("Not authenticated")
    token_data = decode_token(credentials.credentials)
    # role comes from the stored account, not the token
    return load_active_user(token_data.user_id)


def require_role(role: str):
    async def role_dep(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") != role:
            raise Forbidden(f"{role.capitalize()} only")
        return user

    return role_dep


require_admin = require_role("admin")
require_beekeeper = require_role("beekeeper")


def register_user(
    name: str,
    email: str,
    password: str,
    role: str = "customer",
    phone: Optional[str] = None,
    locality: Optional[str] = None,
) -> str:
    if role not in SELF_REGISTER_ROLES:
        logger.warning(f"Refused self-registration as {role!r} for {email}")
        raise Forbidden("Administrator accounts cannot be self-registered")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if collection("user").find_one({"email": email}):
        raise EmailTaken()
    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        # beekeepers take jobs only after an admin approves them
        is_approved=role != "beekeeper",
        locality=locality.strip() if locality else None,
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise EmailTaken()
    logger.info(f"Registered {role} {user_id}")
    return user_id


def authenticate(email: str, password: str) -> dict:
    doc = collection("user").find_one({"email": email})
    if not doc or not verify_password(password, doc.get("password_hash", "")):
        raise InvalidCredentials()
    if doc.get("is_blocked"):
        raise AccountBlocked()
    user_id = str(doc["_id"])
    role = doc.get("role", "customer")
    return {
        "token": create_access_token(user_id, role),
        "refresh_token": create_refresh_token(user_id, role),
        "role": role,
        "user": {"_id": user_id, "name": doc.get("name"), "email": doc.get("email"), "role": role},
    }


def refresh(refresh_token: str) -> dict:
    token_data = decode_token(refresh_token, expected_type="refresh")
    user = load_active_user(token_data.user_id)
    return {"token": create_access_token(user["_id"], user["role"]), "role": user["role"]}
