"""
models.py
Domain types (members, payments, change events) and the wire-record mapping.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum


class Frequency(str, Enum):
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
    ONE_TIME = "One-time"


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RecordError(ValueError):
    """A wire record cannot be turned into a Member."""


# Columns of the `members` table, in wire order
RECORD_FIELDS = ("id", "name", "phone", "email", "committed_amount", "frequency", "payments", "notes")


@dataclass(frozen=True)
class Payment:
    id: str
    date: str  # YYYY-MM-DD
    amount: float
    note: str = ""


@dataclass(frozen=True)
class Member:
    id: int
    name: str
    phone: str = ""
    email: str = ""
    committed_amount: float = 0.0
    frequency: Frequency = Frequency.YEARLY
    payments: tuple[Payment, ...] = field(default_factory=tuple)
    notes: str = ""

    @property
    def total_paid(self) -> float:
        return sum(p.amount for p in self.payments)

    @property
    def balance(self) -> float:
        return max(0.0, self.committed_amount - self.total_paid)

    @property
    def progress(self) -> float:
        """
        Percentage of the pledge paid, capped at 100.
        A zero pledge divides by 1 instead of 0.
        """
        divisor = self.committed_amount or 1
        return min(100.0, 100.0 * self.total_paid / divisor)

    def with_payment(self, payment: Payment) -> "Member":
        """
        New payment goes first, then the whole list is ordered by date (newest first).
        """
        payments = sorted((payment, *self.payments), key=lambda p: p.date, reverse=True)
        return replace(self, payments=tuple(payments))

    def without_payment(self, payment_id: str) -> "Member":
        return replace(self, payments=tuple(p for p in self.payments if p.id != payment_id))


@dataclass(frozen=True)
class DashboardStats:
    member_count: int
    total_committed: float
    total_collected: float
    collection_rate: float


@dataclass(frozen=True)
class ChangeEvent:
    """One realtime notification from the gateway. `record` is in wire shape."""
    event_type: EventType
    record: dict


def new_payment_id() -> str:
    return str(uuid.uuid4())


def make_payment(amount: float, pay_date: str, note: str = "") -> Payment:
    if amount <= 0:
        raise ValueError("Payment amount must be > 0.")
    date.fromisoformat(pay_date)  # raises ValueError on a malformed date
    return Payment(id=new_payment_id(), date=pay_date, amount=float(amount), note=note.strip())


def parse_frequency(value) -> Frequency:
    if isinstance(value, Frequency):
        return value
    for f in Frequency:
        if f.value == value:
            return f
    raise RecordError(f"Unknown frequency: {value!r}")


# ---------- Wire mapping ----------

def payment_from_record(rec: dict) -> Payment:
    try:
        return Payment(
            id=str(rec["id"]),
            date=str(rec["date"]),
            amount=float(rec["amount"]),
            note=rec.get("note") or "",
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise RecordError(f"Malformed payment record: {rec!r}") from exc


def payment_to_record(payment: Payment) -> dict:
    return {"id": payment.id, "date": payment.date, "amount": payment.amount, "note": payment.note}


def member_from_record(rec: dict) -> Member:
    """
    Build a Member from a wire record.
    - `id` and a non-empty `name` are required
    - null phone/email/notes become "", null payments become ()
    - `committed_amount` defaults to 0 when null and must not be negative
    - `payments` must be a list when present
    - `frequency` defaults to Yearly when null, unknown values are rejected
    """
    if rec.get("id") is None:
        raise RecordError(f"Record has no id: {rec!r}")
    name = rec.get("name")
    if not name:
        raise RecordError(f"Record {rec['id']} has no name")

    try:
        member_id = int(rec["id"])
        committed = float(rec.get("committed_amount") or 0)
    except (TypeError, ValueError) as exc:
        raise RecordError(f"Record {rec['id']} has a non-numeric field") from exc
    if committed < 0:
        raise RecordError(f"Record {member_id} has a negative committed_amount")

    payments = rec.get("payments") or []
    if not isinstance(payments, list):
        raise RecordError(f"Record {member_id} has a malformed payments field")

    freq = rec.get("frequency")
    frequency = Frequency.YEARLY if freq is None else parse_frequency(freq)

    return Member(
        id=member_id,
        name=str(name),
        phone=rec.get("phone") or "",
        email=rec.get("email") or "",
        committed_amount=committed,
        frequency=frequency,
        payments=tuple(payment_from_record(p) for p in payments),
        notes=rec.get("notes") or "",
    )


def member_to_record(member: Member) -> dict:
    return {
        "id": member.id,
        "name": member.name,
        "phone": member.phone or None,
        "email": member.email or None,
        "committed_amount": member.committed_amount,
        "frequency": member.frequency.value,
        "payments": [payment_to_record(p) for p in member.payments],
        "notes": member.notes or None,
    }
