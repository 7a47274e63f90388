"""Pytest fixtures for the delivery backend tests."""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway SQLite file before any project module is imported
_DB_DIR = tempfile.mkdtemp(prefix="delivery-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ.pop("FIREBASE_CREDENTIALS", None)

from databases import Database  # noqa: E402

import crud  # noqa: E402
import models  # noqa: E402, F401
from config import DATABASE_URL  # noqa: E402
from database import Base, engine  # noqa: E402
from services.push_transports import PushTransport, TransportResult  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_tables():
    """Recreate every table so each test starts from an empty database."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def run_db(fn):
    """Run ``fn(db)`` on a freshly connected database in its own event loop."""
    async def runner():
        db = Database(DATABASE_URL)
        await db.connect()
        try:
            return await fn(db)
        finally:
            await db.disconnect()
    return asyncio.run(runner())


@pytest.fixture
def db_run():
    return run_db


class FakeTransport(PushTransport):
    """Records what it was asked to send and answers with a canned outcome."""

    def __init__(self, name="fake", dead=(), fail=(), raises=None, result=True):
        self.name = name
        self.dead = set(dead)
        self.fail = set(fail)
        self.raises = raises
        self.result = result
        self.calls = []

    async def send(self, tokens, title, body, data):
        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        if self.raises is not None:
            raise self.raises
        if not self.result:
            return None
        result = TransportResult()
        for token in tokens:
            if token in self.dead:
                result.dead.append(token)
                result.failed.append(token)
            elif token in self.fail:
                result.failed.append(token)
            else:
                result.delivered.append(token)
        return result


@pytest.fixture
def fake_transport():
    return FakeTransport


async def make_customer(db, phone="07701234567", area="الطويسة", store_name="متجر الاختبار",
                        password="secret123", push_token=None):
    customer = await crud.create_customer(db, store_name, phone, password, area)
    if push_token is not None:
        await crud.set_customer_push_token(db, customer["id"], push_token)
        customer = await crud.get_customer(db, customer["id"])
    return customer


EXPO_TOKEN = "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"
FCM_TOKEN = "fcm-token_" + "a" * 140
