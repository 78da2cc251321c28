"""
MongoDB client wiring.

The client is created lazily so importing the app never opens a connection;
FastAPI dependencies hand the database and transaction runner to routes and
are overridden in tests.
"""
from typing import Optional
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

import config
from core.transactions import SessionlessRunner, TransactionRunner

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(config.MONGO_URL)
        logger.info(f"MongoDB client created for database '{config.DB_NAME}'")
    return _client


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


def get_database() -> AsyncIOMotorDatabase:
    return get_client()[config.DB_NAME]


def get_transaction_runner():
    if not config.MONGO_TRANSACTIONS:
        return SessionlessRunner()
    return TransactionRunner(get_client())
