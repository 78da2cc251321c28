"""
Shared fixtures: an in-memory MongoDB (mongomock-motor), the sessionless
runner, wired services and an HTTP client over the ASGI app.
"""
from datetime import datetime
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

import database
from auth import create_access_token, hash_password
from core.rate_limit import InMemoryCooldownStore
from core.transactions import SessionlessRunner
from dependencies import Services, get_cooldown_store
from server import app

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def db():
    return AsyncMongoMockClient()["unispot_test"]


@pytest.fixture
def services(db):
    return Services(db)


@pytest.fixture
def runner():
    return SessionlessRunner()


@pytest.fixture
def cooldowns():
    return InMemoryCooldownStore()


@pytest.fixture
async def client(db, cooldowns):
    app.dependency_overrides[database.get_database] = lambda: db
    app.dependency_overrides[database.get_transaction_runner] = lambda: SessionlessRunner()
    app.dependency_overrides[get_cooldown_store] = lambda: cooldowns

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user_id: int, role: str = "STUDENT") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


async def insert_user(
    db,
    user_id: int,
    role: str = "STUDENT",
    wallet_balance: int = 0,
    email: Optional[str] = None,
    password: str = DEFAULT_PASSWORD,
) -> dict:
    now = datetime.utcnow()
    user = {
        "id": user_id,
        "email": email or f"user{user_id}@example.com",
        "role": role,
        "name": f"User {user_id}",
        "passwordHash": hash_password(password),
        "walletBalance": wallet_balance,
        "avatarUrl": None,
        "phone": None,
        "bio": None,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.users.insert_one(user)
    return user


async def insert_course(db, course_id: int = 1, code: str = "CS101") -> dict:
    now = datetime.utcnow()
    course = {"id": course_id, "code": code, "name": "Intro to CS", "createdAt": now, "updatedAt": now}
    await db.courses.insert_one(course)
    return course


async def insert_study_sheet(
    db,
    sheet_id: int = 1,
    owner_id: int = 1,
    status: str = "APPROVED",
    price_cents: int = 500,
    course_id: int = 1,
) -> dict:
    now = datetime.utcnow()
    sheet = {
        "id": sheet_id,
        "title": "Midterm notes",
        "description": "Chapters 1-5",
        "fileUrl": "https://files.example.com/notes.pdf",
        "priceCents": price_cents,
        "status": status,
        "ownerId": owner_id,
        "courseId": course_id,
        "courseCode": "CS101",
        "createdAt": now,
        "updatedAt": now,
    }
    await db.study_sheets.insert_one(sheet)
    return sheet


async def insert_payment(
    db,
    payment_id: int = 1,
    status: str = "PENDING",
    amount=500,
    buyer_id: int = 2,
    seller_id: int = 1,
) -> dict:
    now = datetime.utcnow()
    payment = {
        "id": payment_id,
        "purchaseId": payment_id,
        "referenceCode": f"REF-TEST-{payment_id:06d}",
        "amount": amount,
        "status": status,
        "buyerId": buyer_id,
        "sellerId": seller_id,
        "studySheetId": 1,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.payments.insert_one(payment)
    return payment


async def insert_review(db, review_id: int = 1, student_id: int = 1, course_id: int = 1, status: str = "VISIBLE") -> dict:
    now = datetime.utcnow()
    review = {
        "id": review_id,
        "studentId": student_id,
        "courseId": course_id,
        "rating": 4,
        "text": "Solid course",
        "status": status,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.reviews.insert_one(review)
    return review


async def insert_lease_listing(db, listing_id: int = 1, owner_id: int = 1, status: str = "PENDING") -> dict:
    now = datetime.utcnow()
    listing = {
        "id": listing_id,
        "title": "Room near campus",
        "description": None,
        "lineId": None,
        "location": "North Gate",
        "rentCents": 450000,
        "depositCents": 900000,
        "startDate": "2026-01-01",
        "endDate": "2026-06-30",
        "status": status,
        "ownerId": owner_id,
        "createdAt": now,
        "updatedAt": now,
    }
    await db.lease_listings.insert_one(listing)
    return listing
