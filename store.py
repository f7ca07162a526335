"""
store.py
Client-side member collection: optimistic writes against the gateway and
merging of realtime change events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from db import Gateway, GatewayError
from models import (
    ChangeEvent,
    EventType,
    Member,
    Payment,
    RecordError,
    make_payment,
    member_from_record,
    member_to_record,
    payment_to_record,
)
from utils import default_members

logger = logging.getLogger(__name__)

OFFLINE_NOTICE = "Offline Mode: Database connection failed."
SEED_FAILED_NOTICE = "Connected, but failed to save initial data."
UNREADABLE_NOTICE = "{count} member record(s) could not be read and were skipped."


class SyncError(RuntimeError):
    """A write reached the gateway and failed. The message is meant for the user."""


@dataclass(frozen=True)
class Notice:
    message: str


def apply_change_event(
    members: dict[int, Member], selected_id: int | None, event: ChangeEvent
) -> tuple[dict[int, Member], int | None]:
    """
    Merge one realtime event into a collection and return the new (members, selected_id).
    The input dict is never modified. Unknown ids on update/delete are no-ops,
    a repeated insert is ignored.
    """
    if event.event_type == EventType.DELETE:
        member_id = event.record.get("id")
        if member_id is None or member_id not in members:
            return members, selected_id
        merged = {k: v for k, v in members.items() if k != member_id}
        return merged, (None if selected_id == member_id else selected_id)

    member = member_from_record(event.record)
    if event.event_type == EventType.INSERT:
        if member.id in members:
            return members, selected_id
        return {**members, member.id: member}, selected_id

    # UPDATE
    if member.id not in members:
        return members, selected_id
    merged = dict(members)
    merged[member.id] = member
    return merged, selected_id


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ReconciliationStore:
    def __init__(
        self,
        gateway: Gateway,
        *,
        rollback_on_failure: bool = True,
        chunk_size: int = 100,
        roster: Callable[[], list[Member]] = default_members,
    ):
        self.gateway = gateway
        self.rollback_on_failure = rollback_on_failure
        self.chunk_size = chunk_size
        self._roster = roster
        self._members: dict[int, Member] = {}
        self._selected_id: int | None = None
        self._subscription: int | None = None
        self.notice: Notice | None = None
        self.loading = False

    # ---------- read access ----------

    @property
    def members(self) -> list[Member]:
        return list(self._members.values())

    def get(self, member_id: int) -> Member | None:
        return self._members.get(member_id)

    @property
    def selected_id(self) -> int | None:
        return self._selected_id

    @property
    def selected(self) -> Member | None:
        if self._selected_id is None:
            return None
        return self._members.get(self._selected_id)

    def select(self, member_id: int | None) -> None:
        self._selected_id = member_id

    def clear_selection(self) -> None:
        self._selected_id = None

    def next_id(self) -> int:
        return max(self._members, default=0) + 1

    # ---------- subscription ----------

    def attach(self) -> None:
        if self._subscription is None:
            self._subscription = self.gateway.subscribe(self.merge_remote_event)

    def detach(self) -> None:
        if self._subscription is not None:
            self.gateway.unsubscribe(self._subscription)
            self._subscription = None

    # ---------- internal ----------

    def _replace_all(self, members: list[Member]) -> None:
        self._members = {m.id: m for m in members}
        if self._selected_id not in self._members:
            self._selected_id = None

    def _restore(self, member_id: int, optimistic: Member, previous: Member | None) -> None:
        # Leave the entry alone if a newer change already replaced our optimistic copy
        if self._members.get(member_id) is not optimistic:
            return
        if previous is None:
            del self._members[member_id]
        else:
            self._members[member_id] = previous

    # ---------- operations ----------

    async def load_all(self) -> None:
        """
        Replace the collection with the store's contents.
        Empty store: seed it with the built-in roster and use that roster locally.
        Unreachable store: fall back to the built-in roster with an offline notice.
        """
        self.loading = True
        try:
            try:
                records = await self.gateway.fetch_all()
            except GatewayError as exc:
                logger.error("Error fetching members: %s", exc)
                self._replace_all(self._roster())
                self.notice = Notice(OFFLINE_NOTICE)
                return

            if records:
                members = []
                for rec in records:
                    try:
                        members.append(member_from_record(rec))
                    except RecordError as exc:
                        logger.warning("Skipping unreadable record: %s", exc)
                self._replace_all(members)
                skipped = len(records) - len(members)
                self.notice = Notice(UNREADABLE_NOTICE.format(count=skipped)) if skipped else None
                return

            logger.info("Store empty, seeding built-in roster")
            defaults = self._roster()
            try:
                await self.gateway.upsert([member_to_record(m) for m in defaults])
                self.notice = None
            except GatewayError as exc:
                logger.error("Seeding failed: %s", exc)
                self.notice = Notice(SEED_FAILED_NOTICE)
            self._replace_all(defaults)
        finally:
            self.loading = False

    async def save(self, member: Member) -> None:
        """
        Edit in place when the id is known, otherwise append; then upsert.
        """
        previous = self._members.get(member.id)
        self._members[member.id] = member

        try:
            await self.gateway.upsert([member_to_record(member)])
        except GatewayError as exc:
            logger.error("Error saving member %s: %s", member.id, exc)
            if self.rollback_on_failure:
                self._restore(member.id, member, previous)
            raise SyncError("Failed to save changes to the cloud. Please check connection.") from exc

    async def delete(self, member_id: int) -> None:
        self._members.pop(member_id, None)
        if self._selected_id == member_id:
            self._selected_id = None

        try:
            await self.gateway.delete(member_id)
        except GatewayError as exc:
            logger.error("Error deleting member %s: %s", member_id, exc)
            await self.load_all()
            raise SyncError("Failed to delete member from database.") from exc

    async def update_payments(self, member: Member) -> None:
        """
        Swap in the member record locally, then persist only its payments.
        """
        previous = self._members.get(member.id)
        if previous is not None:
            self._members[member.id] = member

        try:
            await self.gateway.update_fields(
                member.id, {"payments": [payment_to_record(p) for p in member.payments]}
            )
        except GatewayError as exc:
            logger.error("Error updating payments for member %s: %s", member.id, exc)
            if self.rollback_on_failure and previous is not None:
                self._restore(member.id, member, previous)
            raise SyncError("Failed to sync payment. The database might be locked or offline.") from exc

    async def add_payment(self, member_id: int, amount: float, pay_date: str, note: str = "") -> Payment:
        member = self._members.get(member_id)
        if member is None:
            raise KeyError(member_id)
        payment = make_payment(amount, pay_date, note)
        await self.update_payments(member.with_payment(payment))
        return payment

    async def delete_payment(self, member_id: int, payment_id: str) -> None:
        member = self._members.get(member_id)
        if member is None:
            raise KeyError(member_id)
        if not any(p.id == payment_id for p in member.payments):
            return
        logger.info("Deleting payment %s from member %s", payment_id, member_id)
        await self.update_payments(member.without_payment(payment_id))

    async def bulk_write(self, inserts: list[Member], updates: list[Member]) -> None:
        """
        Upsert inserts and updates in fixed-size chunks, then re-fetch.
        Any failed chunk aborts the rest.
        """
        payload = [member_to_record(m) for m in (*inserts, *updates)]
        if not payload:
            return

        for chunk in _chunks(payload, self.chunk_size):
            try:
                await self.gateway.upsert(chunk)
            except GatewayError as exc:
                logger.error("Bulk import failed: %s", exc)
                raise SyncError("Failed to upload data to server.") from exc

        logger.info("Bulk write done: %d inserted, %d updated", len(inserts), len(updates))
        await self.load_all()

    def merge_remote_event(self, event: ChangeEvent) -> None:
        logger.debug("Realtime change received: %s %s", event.event_type.value, event.record.get("id"))
        try:
            self._members, self._selected_id = apply_change_event(self._members, self._selected_id, event)
        except RecordError as exc:
            logger.warning("Dropping malformed %s event: %s", event.event_type.value, exc)
