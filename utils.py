"""
utils.py
Logging setup, dashboard aggregates, search, contact helpers, built-in roster.
"""

from __future__ import annotations

import logging
from typing import Iterable

import pandas as pd

from importer import normalize_phone
from models import DashboardStats, Frequency, Member, Payment

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def dashboard_stats(members: Iterable[Member]) -> DashboardStats:
    members = list(members)
    committed = sum(m.committed_amount for m in members)
    collected = sum(m.total_paid for m in members)
    rate = (collected / committed) * 100 if committed > 0 else 0.0
    return DashboardStats(
        member_count=len(members),
        total_committed=committed,
        total_collected=collected,
        collection_rate=rate,
    )


def top_commitments(members: Iterable[Member], limit: int = 5) -> list[Member]:
    return sorted(members, key=lambda m: m.committed_amount, reverse=True)[:limit]


def members_frame(members: Iterable[Member]) -> pd.DataFrame:
    rows = [
        {
            "id": m.id,
            "name": m.name,
            "phone": m.phone,
            "frequency": m.frequency.value,
            "committed": m.committed_amount,
            "paid": m.total_paid,
            "balance": m.balance,
            "progress": round(m.progress),
        }
        for m in members
    ]
    return pd.DataFrame(rows, columns=["id", "name", "phone", "frequency", "committed", "paid", "balance", "progress"])


def filter_members(members: Iterable[Member], search: str) -> list[Member]:
    term = search.strip()
    if not term:
        return list(members)
    lowered = term.lower()
    return [m for m in members if lowered in m.name.lower() or term in m.phone]


def _plain_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"


def reminder_text(member: Member) -> str:
    """Pledge reminder message for copying into a chat or SMS."""
    return (
        f"As-salamu alaykum {member.name},\n\n"
        "This is a friendly reminder regarding your pledge to Markaz Masjid.\n"
        f"Committed: ${_plain_amount(member.committed_amount)}\n"
        f"Paid so far: ${_plain_amount(member.total_paid)}\n"
        f"Remaining Balance: ${_plain_amount(member.balance)}\n\n"
        "JazakAllah Khair for your continued support!"
    )


def whatsapp_url(member: Member) -> str | None:
    digits = normalize_phone(member.phone)
    return f"https://wa.me/{digits}" if digits else None


# (name, phone, committed, frequency, notes)
_DEFAULT_ROSTER = [
    ("Mohammed Sadruzzaman", "716-548-8693", 2400, Frequency.YEARLY, ""),
    ("Mohammed Javed Hasanat", "332-209-9847", 1200, Frequency.YEARLY, ""),
    ("M Saad Hossain", "716-292-3000", 1800, Frequency.YEARLY, ""),
    ("Mohammad Abdul Kaium", "716-303-9144", 2400, Frequency.YEARLY, ""),
    ("Muhammad Sayedur Rahman", "347-691-1515", 2400, Frequency.YEARLY, ""),
    ("Abdul Kashem", "917-673-6587", 4000, Frequency.YEARLY, ""),
    ("Farid Bhana", "716-446-3691", 1200, Frequency.YEARLY, ""),
    ("Muhammad Mofizul Islam", "917-294-0521", 1200, Frequency.YEARLY, ""),
    ("Effath A Elahi", "716-903-1302", 1200, Frequency.YEARLY, ""),
    ("Anisul Jasir(Dulal)", "716-880-9365", 600, Frequency.ONE_TIME, ""),
    ("Mohammed Sowkat Mustafa", "917-348-6127", 1200, Frequency.YEARLY, ""),
    ("Tufayl Ahmed", "716-348-9698", 1200, Frequency.YEARLY, ""),
    ("Abu Zafar", "716-816-5234", 2000, Frequency.YEARLY, ""),
    ("Mohammed Zia", "716-400-9994", 1200, Frequency.YEARLY, ""),
    ("Abdul Rehman Siddiqui", "917-888-6861", 2000, Frequency.YEARLY, ""),
    ("M Zubair Hossain", "716-436-8226", 2000, Frequency.YEARLY, ""),
    ("Mohammad Dudumiah", "716-533-3061", 1800, Frequency.YEARLY, ""),
    ("Student Farid", "716-238-8490", 1000, Frequency.ONE_TIME, ""),
    ("Abdulmuqeet M Chowdhury", "716-444-9038", 600, Frequency.ONE_TIME, ""),
    ("Mohd Hassan", "917-345-7902", 4000, Frequency.YEARLY, ""),
    ("Zubair Ali", "917-302-6966", 3000, Frequency.YEARLY, ""),
    ("Nizam Bhai", "", 1200, Frequency.YEARLY, ""),
    ("Raja Bhai", "646-269-9199", 2399, Frequency.YEARLY, ""),
    ("Habib Rahman", "", 3000, Frequency.YEARLY, ""),
    ("Rashidullah Bhai", "424-393-6629", 500, Frequency.ONE_TIME, ""),
    ("Abdullah Siddiqui", "", 1200, Frequency.YEARLY, ""),
    ("Jamal Fiji", "", 1000, Frequency.ONE_TIME, ""),
    ("Khalid Father", "", 600, Frequency.ONE_TIME, ""),
    ("Mahfuz Bhai", "718-290-6538", 1200, Frequency.YEARLY, ""),
    ("Ta if", "917-756-0195", 1200, Frequency.YEARLY, ""),
    ("M Shawkat Ali", "716-322-8300", 1200, Frequency.YEARLY, ""),
    ("Sayedur Rahman Ahliya", "", 500, Frequency.ONE_TIME, ""),
    ("Ayyub Bhuiya", "", 600, Frequency.ONE_TIME, ""),
    ("Tarikul Islam", "+1 (347) 282-4557", 600, Frequency.MONTHLY, ""),
    ("Sumon Miah", "", 5000, Frequency.YEARLY, ""),
    ("Maruf bhai Hudson", "(838) 877-0405", 0, Frequency.MONTHLY, "Do not disclose monthly"),
    ("Shadat Patan", "(561) 818-5652", 1200, Frequency.MONTHLY, "Promised $100 monthly"),
]

# member id -> (payment id, date, amount, note); ids are fixed so re-seeding is idempotent
_DEFAULT_PAYMENTS = {
    17: [
        ("seed-17-1", "2023-12-01", 100.0, "December"),
        ("seed-17-2", "2023-11-13", 150.0, "Paid - Hasan Bhai"),
    ],
    24: [
        ("seed-24-1", "2023-11-14", 500.0, "Paid - Zubair"),
    ],
}


def default_members() -> list[Member]:
    """
    Built-in roster used to seed an empty store and as the offline fallback.
    """
    members = []
    for i, (name, phone, committed, freq, notes) in enumerate(_DEFAULT_ROSTER, start=1):
        payments = tuple(Payment(*p) for p in _DEFAULT_PAYMENTS.get(i, []))
        members.append(
            Member(
                id=i,
                name=name,
                phone=phone,
                committed_amount=float(committed),
                frequency=freq,
                payments=payments,
                notes=notes,
            )
        )
    return members
