import asyncio
import re
import sqlite3

import pytest

from licensedb.codes import CodeLifecycleManager, GeneratedCodes
from licensedb.errors import CodeGenerationExhausted, PersistenceVerificationFailed
from licensedb.store import SQLiteStore

from .conftest import RecordingSleep

CODE_PATTERN = re.compile(r"^(ADM|VWR)-[A-Z0-9]{8}$")


def scripted_generator(*codes: str):
    remaining = iter(codes)
    calls = []

    def _generate(role: str) -> str:
        calls.append(role)
        return next(remaining)

    _generate.calls = calls
    return _generate


async def active_by_type(store, user_id: int):
    active = await store.get_user_codes(user_id)
    return {
        "admin": [c.code for c in active if c.type == "admin"],
        "viewer": [c.code for c in active if c.type == "viewer"],
    }


@pytest.mark.asyncio
async def test_regenerate_issues_one_active_code_per_role(store, manager, user_id) -> None:
    codes = await manager.regenerate_codes(user_id)

    assert isinstance(codes, GeneratedCodes)
    assert CODE_PATTERN.match(codes.admin_code)
    assert codes.admin_code.startswith("ADM-")
    assert codes.viewer_code.startswith("VWR-")
    assert await active_by_type(store, user_id) == {
        "admin": [codes.admin_code],
        "viewer": [codes.viewer_code],
    }


@pytest.mark.asyncio
async def test_regenerate_retires_previous_codes(store, manager, user_id) -> None:
    first = await manager.regenerate_codes(user_id)
    second = await manager.regenerate_codes(user_id)

    assert await active_by_type(store, user_id) == {
        "admin": [second.admin_code],
        "viewer": [second.viewer_code],
    }
    history = await store.get_code_history(user_id)
    assert len(history) == 4
    retired = {c.code: c for c in history if not c.is_active}
    assert set(retired) == {first.admin_code, first.viewer_code}
    assert all(c.updated_at >= c.created_at for c in retired.values())


@pytest.mark.asyncio
async def test_regenerate_leaves_other_users_alone(store, manager, user_id) -> None:
    other_id = await store.add_user(name="Bob", email="bob@example.com")
    other = await manager.regenerate_codes(other_id)

    await manager.regenerate_codes(user_id)
    await manager.regenerate_codes(user_id)

    assert await manager.get_active_codes(other_id) == {
        "admin": other.admin_code,
        "viewer": other.viewer_code,
    }


@pytest.mark.asyncio
async def test_deactivate_codes_counts_retired(store, manager, user_id) -> None:
    await manager.regenerate_codes(user_id)

    assert await manager.deactivate_codes(user_id) == 2
    assert await manager.deactivate_codes(user_id) == 0
    assert await manager.get_active_codes(user_id) == {}


@pytest.mark.asyncio
async def test_collision_is_retried(store, sleep, user_id) -> None:
    await store.add_code(user_id=999, code="ADM-TAKEN000", type="admin")
    generator = scripted_generator("ADM-TAKEN000", "ADM-FRESH001", "VWR-FRESH002")
    manager = CodeLifecycleManager(store, generator=generator, sleep=sleep)

    codes = await manager.regenerate_codes(user_id)

    assert codes == GeneratedCodes(admin_code="ADM-FRESH001", viewer_code="VWR-FRESH002")
    assert generator.calls == ["admin", "admin", "viewer"]


@pytest.mark.asyncio
async def test_exhausted_attempts_fail_the_regeneration(store, sleep, user_id) -> None:
    await store.add_code(user_id=999, code="ADM-TAKEN000", type="admin")
    generator = scripted_generator(*["ADM-TAKEN000"] * 3)
    manager = CodeLifecycleManager(store, max_attempts=3, generator=generator, sleep=sleep)

    with pytest.raises(CodeGenerationExhausted) as excinfo:
        await manager.regenerate_codes(user_id)

    assert excinfo.value.role == "admin"
    assert excinfo.value.attempts == 3
    assert len(generator.calls) == 3
    assert await store.get_user_codes(user_id) == []


@pytest.mark.asyncio
async def test_legacy_mode_proceeds_with_duplicate_and_store_rejects_it(store, sleep, user_id) -> None:
    await store.add_code(user_id=999, code="ADM-TAKEN000", type="admin")
    generator = scripted_generator(*["ADM-TAKEN000"] * 2, "VWR-FRESH002")
    manager = CodeLifecycleManager(
        store, max_attempts=2, allow_duplicates=True, generator=generator, sleep=sleep
    )

    with pytest.raises(sqlite3.IntegrityError):
        await manager.regenerate_codes(user_id)

    assert (await store.get_code("ADM-TAKEN000")).user_id == 999


@pytest.mark.asyncio
async def test_read_back_waits_settle_delay_once_when_codes_are_visible(manager, sleep, user_id) -> None:
    await manager.regenerate_codes(user_id)

    assert sleep.delays == [0.2]


@pytest.mark.asyncio
async def test_read_back_retries_once_then_succeeds(store, user_id, monkeypatch) -> None:
    sleep = RecordingSleep()
    real_get_code = store.get_code

    async def lagging_get_code(code):
        # Invisible until the retry delay has elapsed.
        if len(sleep.delays) < 2:
            return None
        return await real_get_code(code)

    async def missing_by_id(code_id):
        return None

    monkeypatch.setattr(store, "get_code", lagging_get_code)
    monkeypatch.setattr(store, "get_code_by_id", missing_by_id)
    manager = CodeLifecycleManager(store, settle_delay=0.2, retry_delay=0.3, sleep=sleep)

    codes = await manager.regenerate_codes(user_id)

    assert sleep.delays == [0.2, 0.3]
    assert (await real_get_code(codes.admin_code)).is_active


@pytest.mark.asyncio
async def test_read_back_falls_back_to_id_lookup(store, sleep, user_id, monkeypatch) -> None:
    async def never_by_string(code):
        return None

    monkeypatch.setattr(store, "get_code", never_by_string)
    manager = CodeLifecycleManager(store, sleep=sleep)

    codes = await manager.regenerate_codes(user_id)

    assert sleep.delays == [0.2]
    assert codes.admin_code.startswith("ADM-")


@pytest.mark.asyncio
async def test_unconfirmed_writes_raise_persistence_verification_failed(store, sleep, user_id, monkeypatch) -> None:
    async def nothing(_):
        return None

    monkeypatch.setattr(store, "get_code", nothing)
    monkeypatch.setattr(store, "get_code_by_id", nothing)
    manager = CodeLifecycleManager(store, sleep=sleep)

    with pytest.raises(PersistenceVerificationFailed) as excinfo:
        await manager.regenerate_codes(user_id)

    assert sleep.delays == [0.2, 0.3]
    assert excinfo.value.admin_found is False
    assert excinfo.value.viewer_found is False
    assert excinfo.value.admin_code.startswith("ADM-")
    # Writes were issued and stay in place; no rollback.
    assert len(await store.get_code_history(user_id)) == 2


@pytest.mark.asyncio
async def test_sequential_regenerations_last_writer_wins(store, manager, user_id) -> None:
    await manager.regenerate_codes(user_id)
    last = await manager.regenerate_codes(user_id)

    assert await manager.get_active_codes(user_id) == {
        "admin": last.admin_code,
        "viewer": last.viewer_code,
    }


@pytest.mark.asyncio
async def test_concurrent_regenerations_are_not_coordinated(store, manager, user_id) -> None:
    # Documents the race: interleaved calls may leave both pairs partly active,
    # but the caller that read the active set last always keeps its full pair.
    first, second = await asyncio.gather(
        manager.regenerate_codes(user_id),
        manager.regenerate_codes(user_id),
    )

    active = {c.code for c in await store.get_user_codes(user_id)}
    pairs = [
        {first.admin_code, first.viewer_code},
        {second.admin_code, second.viewer_code},
    ]
    assert active <= pairs[0] | pairs[1]
    assert any(pair <= active for pair in pairs)


def test_max_attempts_must_be_positive(tmp_path) -> None:
    with pytest.raises(ValueError):
        CodeLifecycleManager(SQLiteStore(str(tmp_path / "unused.db")), max_attempts=0)
