"""
Authentication and the caller's own account.
"""
from fastapi import APIRouter, Depends, status
from pymongo.errors import DuplicateKeyError
from datetime import datetime
import logging
import time

import config
from auth import create_access_token, get_current_user, hash_password, verify_password
from core.invariants import is_positive_int
from core.rate_limit import is_cooling_down, start_cooldown
from dependencies import Services, get_cooldown_store, get_services, get_transaction_runner
from errors import BadRequestError, DuplicateError, NotFoundError, UnauthorizedError
from models import (
    LoginRequest,
    MeUpdate,
    PasswordChangeRequest,
    RegisterRequest,
    UserResponse,
    WalletResponse,
    to_response,
)
from permissions import Role

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api", tags=["Authentication"])


# ============================================
# AUTHENTICATION ENDPOINTS
# ============================================

@auth_router.post("/auth/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    body: RegisterRequest,
    services: Services = Depends(get_services),
    runner=Depends(get_transaction_runner),
):
    """Register a new STUDENT account and return an access token."""
    db = services.db

    async def workflow(session):
        if await db.users.find_one({"email": body.email}, {"_id": 1}, session=session):
            raise DuplicateError("Email already exists")

        now = datetime.utcnow()
        user = {
            "id": await services.sequences.next_id("users", session=session),
            "email": body.email,
            "role": Role.STUDENT.value,
            "name": body.name,
            "passwordHash": hash_password(body.password),
            "walletBalance": 0,
            "avatarUrl": None,
            "phone": None,
            "bio": None,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await db.users.insert_one(user, session=session)
        except DuplicateKeyError:
            raise DuplicateError("Email already exists")
        return user

    user = await runner.run(workflow)
    logger.info(f"User registered: {user['email']} (id={user['id']})")
    return {"access_token": create_access_token(user["id"], user["role"])}


@auth_router.post("/auth/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    user = await services.db.users.find_one({"email": body.email})
    password_hash = user.get("passwordHash") if user else None
    if not isinstance(password_hash, str) or not verify_password(body.password, password_hash):
        raise UnauthorizedError("Invalid credentials")

    if not is_positive_int(user.get("id")) or not isinstance(user.get("role"), str):
        logger.error(f"[AUTH] Malformed user document for {body.email}")
        raise UnauthorizedError("Invalid credentials")

    return {"access_token": create_access_token(user["id"], user["role"])}


# ============================================
# CURRENT USER
# ============================================

async def _load_me(services: Services, user_id: int) -> dict:
    user = await services.db.users.find_one({"id": user_id})
    if not user:
        raise NotFoundError("User not found")
    return user


@auth_router.get("/me")
async def get_me(
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return to_response(UserResponse, await _load_me(services, current_user["user_id"]))


@auth_router.patch("/me")
async def update_me(
    body: MeUpdate,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    changes = body.model_dump(by_alias=True, exclude_none=True)
    changes["updatedAt"] = datetime.utcnow()

    result = await services.db.users.update_one(
        {"id": current_user["user_id"]}, {"$set": changes}
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")

    return to_response(UserResponse, await _load_me(services, current_user["user_id"]))


@auth_router.patch("/me/password")
async def change_password(
    body: PasswordChangeRequest,
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
    cooldowns=Depends(get_cooldown_store),
):
    user_id = current_user["user_id"]
    now = time.time()
    if is_cooling_down(user_id, now, cooldowns):
        raise BadRequestError("Please wait 1 minute before changing password again")

    user = await _load_me(services, user_id)
    password_hash = user.get("passwordHash")
    if not isinstance(password_hash, str) or not verify_password(body.current_password, password_hash):
        raise BadRequestError("Current password is incorrect")

    await services.db.users.update_one(
        {"id": user_id},
        {"$set": {"passwordHash": hash_password(body.new_password), "updatedAt": datetime.utcnow()}}
    )
    start_cooldown(user_id, now, config.PASSWORD_CHANGE_COOLDOWN_SECONDS, cooldowns)

    logger.info(f"[AUTH] Password changed for user:{user_id}")
    return {"success": True}


@auth_router.get("/me/wallet")
async def get_wallet(
    current_user: dict = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return to_response(WalletResponse, await services.payments.get_wallet(current_user["user_id"]))
