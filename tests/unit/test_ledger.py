"""Unit tests for the idempotency ledger.

Run with: pytest tests/unit/test_ledger.py -v
"""

import asyncio

import pytest
from factories import TRACK_A, TRACK_B

from beatkeeper.db.ledger import IdempotencyLedger, SaveKey
from beatkeeper.db.models import SaveStatus
from beatkeeper.errors import DuplicateKey

KEY = SaveKey(workspace_id="T1", user_id="U1", thread_id="1700000000.000100", track_id=TRACK_A)


async def _insert(ledger: IdempotencyLedger, key: SaveKey = KEY, **overrides):
    fields = {"channel_id": "C1", "mention_id": "1700000100.000200", "status": SaveStatus.SAVED}
    fields.update(overrides)
    return await ledger.insert(key, **fields)


class TestIdempotencyLedger:
    async def test_find_missing(self, ledger: IdempotencyLedger) -> None:
        assert await ledger.find(KEY) is None

    async def test_insert_then_find(self, ledger: IdempotencyLedger) -> None:
        await _insert(ledger)
        record = await ledger.find(KEY)
        assert record is not None
        assert record.status is SaveStatus.SAVED
        assert record.channel_id == "C1"
        assert record.error_code is None
        assert record.created_at.tzinfo is not None

    async def test_failed_record_keeps_error(self, ledger: IdempotencyLedger) -> None:
        await _insert(
            ledger,
            status=SaveStatus.FAILED,
            error_code="spotify_403",
            error_message="Insufficient client scope",
        )
        record = await ledger.find(KEY)
        assert record.status is SaveStatus.FAILED
        assert record.error_code == "spotify_403"
        assert record.error_message == "Insufficient client scope"

    async def test_duplicate_key_rejected(self, ledger: IdempotencyLedger) -> None:
        await _insert(ledger)
        with pytest.raises(DuplicateKey):
            await _insert(ledger, mention_id="1700000200.000300")

    async def test_first_write_is_kept(self, ledger: IdempotencyLedger) -> None:
        await _insert(ledger, status=SaveStatus.FAILED, error_code="AuthRequired")
        with pytest.raises(DuplicateKey):
            await _insert(ledger, status=SaveStatus.SAVED)
        assert (await ledger.find(KEY)).status is SaveStatus.FAILED

    @pytest.mark.parametrize(
        "other",
        [
            SaveKey("T2", "U1", KEY.thread_id, TRACK_A),
            SaveKey("T1", "U2", KEY.thread_id, TRACK_A),
            SaveKey("T1", "U1", "1700000999.000100", TRACK_A),
            SaveKey("T1", "U1", KEY.thread_id, TRACK_B),
        ],
    )
    async def test_keys_differing_in_one_field_coexist(
        self, ledger: IdempotencyLedger, other: SaveKey,
    ) -> None:
        await _insert(ledger)
        await _insert(ledger, key=other)
        assert await ledger.find(other) is not None

    async def test_concurrent_inserts_one_winner(self, ledger: IdempotencyLedger) -> None:
        results = await asyncio.gather(
            *(_insert(ledger, mention_id=f"17000001{i:02d}.000000") for i in range(8)),
            return_exceptions=True,
        )
        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, DuplicateKey)]
        assert len(winners) == 1
        assert len(losers) == 7
