from datetime import datetime, timedelta
from typing import Optional
import jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

import config
from core.invariants import is_positive_int
from errors import UnauthorizedError

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# HTTP Bearer for token extraction; missing header handled below as 401
security = HTTPBearer(auto_error=False)

def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)

def create_access_token(user_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for a user id and role."""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"user_id": user_id, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

def decode_access_token(token: str) -> dict:
    """Decode and validate JWT access token"""
    try:
        payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token has expired")
    except jwt.PyJWTError:
        raise UnauthorizedError("Could not validate credentials")

    # Verify token type
    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    return payload

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """Extract the caller as {user_id, role} from the bearer token"""
    if credentials is None:
        raise UnauthorizedError("Unauthorized")

    payload = decode_access_token(credentials.credentials)

    user_id = payload.get("user_id")
    role = payload.get("role")
    if not is_positive_int(user_id) or not isinstance(role, str):
        raise UnauthorizedError("Invalid authentication credentials")

    return {"user_id": user_id, "role": role}
