import pytest

from licensedb.retry import poll_until

from .conftest import RecordingSleep


@pytest.mark.asyncio
async def test_returns_first_truthy_result_without_further_delays() -> None:
    sleep = RecordingSleep()
    calls = []

    async def probe():
        calls.append(1)
        return "found"

    assert await poll_until(probe, delays=(0.2, 0.3), sleep=sleep) == "found"
    assert sleep.delays == [0.2]
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retries_after_each_delay() -> None:
    sleep = RecordingSleep()
    results = iter([None, None, 7])

    async def probe():
        return next(results)

    assert await poll_until(probe, delays=(0, 0.1, 0.5), sleep=sleep) == 7
    assert sleep.delays == [0.1, 0.5]


@pytest.mark.asyncio
async def test_returns_last_falsy_result_when_exhausted() -> None:
    sleep = RecordingSleep()

    async def probe():
        return False

    assert await poll_until(probe, delays=(0.2, 0.3), sleep=sleep) is False
    assert sleep.delays == [0.2, 0.3]


@pytest.mark.asyncio
async def test_requires_delays() -> None:
    async def probe():
        return True

    with pytest.raises(ValueError):
        await poll_until(probe, delays=())
