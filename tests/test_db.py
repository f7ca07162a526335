"""Tests for the SQLite gateway."""

import gc

import pytest

from db import GatewayError, SqliteGateway
from fakes import make_member
from models import EventType, Payment, member_from_record, member_to_record
from store import ReconciliationStore


@pytest.fixture
def events(sqlite_gateway):
    received = []
    sqlite_gateway.subscribe(received.append)
    return received


class TestMembers:
    @pytest.mark.asyncio
    async def test_upsert_and_fetch_ordered_by_name(self, sqlite_gateway, sample_members):
        await sqlite_gateway.upsert([member_to_record(m) for m in sample_members])
        records = await sqlite_gateway.fetch_all()
        assert [r["name"] for r in records] == ["Aisha Karim", "John Smith", "Omar Farouk"]
        assert member_from_record(records[0]) == sample_members[1]
        assert records[2]["phone"] is None

    @pytest.mark.asyncio
    async def test_upsert_emits_insert_then_update(self, sqlite_gateway, events):
        rec = member_to_record(make_member(1, "A"))
        await sqlite_gateway.upsert([rec])
        await sqlite_gateway.upsert([{**rec, "name": "A2"}])
        assert [e.event_type for e in events] == [EventType.INSERT, EventType.UPDATE]
        assert events[1].record["name"] == "A2"
        assert len(await sqlite_gateway.fetch_all()) == 1

    @pytest.mark.asyncio
    async def test_update_fields_payments(self, sqlite_gateway, events):
        await sqlite_gateway.upsert([member_to_record(make_member(1, "A"))])
        payments = [{"id": "p", "date": "2024-01-01", "amount": 20.0, "note": ""}]
        await sqlite_gateway.update_fields(1, {"payments": payments})
        records = await sqlite_gateway.fetch_all()
        assert records[0]["payments"] == payments
        assert events[-1].event_type == EventType.UPDATE
        assert events[-1].record["payments"] == payments

    @pytest.mark.asyncio
    async def test_update_fields_unknown_id_is_silent(self, sqlite_gateway, events):
        await sqlite_gateway.update_fields(42, {"notes": "x"})
        assert events == []

    @pytest.mark.asyncio
    async def test_update_fields_rejects_unknown_columns(self, sqlite_gateway):
        with pytest.raises(GatewayError):
            await sqlite_gateway.update_fields(1, {"id": 2})
        with pytest.raises(GatewayError):
            await sqlite_gateway.update_fields(1, {"balance; DROP TABLE members": 1})

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_gateway, events):
        await sqlite_gateway.upsert([member_to_record(make_member(1, "A"))])
        await sqlite_gateway.delete(1)
        await sqlite_gateway.delete(1)
        assert await sqlite_gateway.fetch_all() == []
        assert [e.event_type for e in events] == [EventType.INSERT, EventType.DELETE]
        assert events[-1].record == {"id": 1}

    @pytest.mark.asyncio
    async def test_constraint_violation_is_gateway_error(self, sqlite_gateway):
        bad = {**member_to_record(make_member(1, "A")), "frequency": "Weekly"}
        with pytest.raises(GatewayError):
            await sqlite_gateway.upsert([bad])

    @pytest.mark.asyncio
    async def test_missing_database_is_gateway_error(self, tmp_path):
        gw = SqliteGateway(tmp_path / "missing" / "nope.db")
        with pytest.raises(GatewayError):
            await gw.fetch_all()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, sqlite_gateway):
        received = []
        handle = sqlite_gateway.subscribe(received.append)
        sqlite_gateway.unsubscribe(handle)
        await sqlite_gateway.upsert([member_to_record(make_member(1, "A"))])
        assert received == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, sqlite_gateway):
        received = []

        def broken(event):
            raise RuntimeError("boom")

        sqlite_gateway.subscribe(broken)
        sqlite_gateway.subscribe(received.append)
        await sqlite_gateway.upsert([member_to_record(make_member(1, "A"))])
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_dropped_store_leaves_registry(self, sqlite_gateway):
        kept = ReconciliationStore(sqlite_gateway)
        kept.attach()
        dropped = ReconciliationStore(sqlite_gateway)
        dropped.attach()
        assert sqlite_gateway.subscriber_count == 2

        del dropped
        gc.collect()
        assert sqlite_gateway.subscriber_count == 1

        await sqlite_gateway.upsert([member_to_record(make_member(1, "A"))])
        assert [m.id for m in kept.members] == [1]


class TestConfig:
    @pytest.mark.asyncio
    async def test_get_set(self, sqlite_gateway):
        assert await sqlite_gateway.get_config("k") is None
        await sqlite_gateway.set_config("k", "v1")
        await sqlite_gateway.set_config("k", "v2")
        assert await sqlite_gateway.get_config("k") == "v2"


class TestWithStore:
    @pytest.mark.asyncio
    async def test_two_clients_stay_in_sync(self, sqlite_gateway):
        seeded = [make_member(1, "A"), make_member(2, "B")]
        first = ReconciliationStore(sqlite_gateway, roster=lambda: list(seeded))
        second = ReconciliationStore(sqlite_gateway, roster=lambda: list(seeded))
        first.attach()
        second.attach()

        await first.load_all()
        await second.load_all()
        assert [m.id for m in second.members] == [1, 2]

        second.select(1)
        await first.add_payment(1, 50, "2024-06-01", "cash")
        assert second.selected.total_paid == 50.0
        assert second.selected.payments[0].note == "cash"

        await first.save(make_member(3, "C"))
        assert second.get(3).name == "C"

        await first.delete(1)
        assert second.get(1) is None
        assert second.selected is None

    @pytest.mark.asyncio
    async def test_store_round_trip_through_sqlite(self, sqlite_gateway, sample_members):
        store = ReconciliationStore(sqlite_gateway)
        await sqlite_gateway.upsert([member_to_record(m) for m in sample_members])
        await store.load_all()
        assert store.get(2).payments == (
            Payment("p-2", "2024-02-01", 200.0, "February"),
            Payment("p-1", "2024-01-01", 200.0, "January"),
        )
