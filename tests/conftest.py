from __future__ import annotations

from typing import List

import pytest

from licensedb.codes import CodeLifecycleManager
from licensedb.store import open_store


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
async def store(tmp_path):
    async with open_store(str(tmp_path / "licensedb-test.db")) as s:
        yield s


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def manager(store, sleep) -> CodeLifecycleManager:
    return CodeLifecycleManager(store, sleep=sleep)


@pytest.fixture
async def user_id(store) -> int:
    return await store.add_user(
        name="Alice",
        email="alice@example.com",
        phone="+15550100",
        product="Plan-6-Premium",
        amount=49.5,
        status="active",
    )
