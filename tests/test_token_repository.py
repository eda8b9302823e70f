# tests/test_token_repository.py

import pytest
from unittest.mock import patch

from tokenwatch.core.exceptions import RepositoryError
from tests.conftest import transfer


@pytest.mark.asyncio
async def test_apply_creates_record(repository):
    await repository.apply("7", "0xA", 12)

    record = await repository.get("7")
    assert record is not None
    assert record.owner == "0xA"
    assert record.last_height == 12


@pytest.mark.asyncio
async def test_apply_is_idempotent(repository):
    await repository.apply("1", "0xA", 3)
    once = await repository.list_recent(100)

    await repository.apply("1", "0xA", 3)
    twice = await repository.list_recent(100)

    assert once == twice
    assert len(twice) == 1


@pytest.mark.asyncio
async def test_later_transfer_wins(repository):
    await repository.apply("1", "A", 5)
    await repository.apply("2", "C", 7)
    await repository.apply("1", "B", 9)

    record = await repository.get("1")
    assert record.owner == "B"
    assert record.last_height == 9
    assert (await repository.get("2")).owner == "C"


@pytest.mark.asyncio
async def test_apply_overwrites_by_arrival_order(repository):
    # No height comparison: the last applied transfer is the current one
    await repository.apply("1", "B", 9)
    await repository.apply("1", "A", 5)

    record = await repository.get("1")
    assert record.owner == "A"
    assert record.last_height == 5


@pytest.mark.asyncio
async def test_max_height_empty(repository):
    assert await repository.max_height() is None


@pytest.mark.asyncio
async def test_max_height_is_checkpoint(repository):
    await repository.apply("1", "0xA", 10)
    await repository.apply("2", "0xB", 37)
    await repository.apply("3", "0xC", 22)

    assert await repository.max_height() == 37


@pytest.mark.asyncio
async def test_list_recent_orders_by_height_desc(repository):
    await repository.apply_batch([
        transfer("1", "0xA", 10),
        transfer("2", "0xB", 30),
        transfer("3", "0xC", 20),
    ])

    records = await repository.list_recent(100)
    assert [r.token_id for r in records] == ["2", "3", "1"]

    limited = await repository.list_recent(2)
    assert [r.token_id for r in limited] == ["2", "3"]


@pytest.mark.asyncio
async def test_list_recent_api_shape(repository):
    await repository.apply("1", "0xB", 5)

    records = await repository.list_recent(100)
    assert [r.to_api() for r in records] == [{"tokenId": "1", "owner": "0xB", "lastUpdate": 5}]


@pytest.mark.asyncio
async def test_apply_batch_same_token_in_order(repository):
    applied = await repository.apply_batch([
        transfer("1", "0xA", 3),
        transfer("1", "0xB", 5),
    ])

    assert applied == 2
    records = await repository.list_recent(100)
    assert len(records) == 1
    assert records[0].owner == "0xB"
    assert records[0].last_height == 5


@pytest.mark.asyncio
async def test_apply_batch_empty(repository):
    assert await repository.apply_batch([]) == 0
    assert await repository.max_height() is None


@pytest.mark.asyncio
async def test_apply_batch_rolls_back_on_failure(repository):
    await repository.apply("1", "0xA", 3)

    original = repository._upsert
    calls = 0

    async def flaky_upsert(session, token_id, owner, height):
        nonlocal calls
        calls += 1
        if calls == 2:
            raise RuntimeError("disk I/O error")
        await original(session, token_id, owner, height)

    with patch.object(repository, "_upsert", side_effect=flaky_upsert):
        with pytest.raises(RepositoryError):
            await repository.apply_batch([
                transfer("1", "0xB", 8),
                transfer("2", "0xC", 9),
            ])

    # Neither event of the failed range is visible
    record = await repository.get("1")
    assert record.owner == "0xA"
    assert await repository.get("2") is None
    assert await repository.max_height() == 3


@pytest.mark.asyncio
async def test_get_missing_token(repository):
    assert await repository.get("404") is None
