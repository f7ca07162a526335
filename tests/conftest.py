"""Pytest configuration and fixtures for contribution tracker tests."""

from pathlib import Path

import pytest

from db import SqliteGateway
from fakes import FakeGateway, make_member
from models import Frequency, Payment, member_to_record
from store import ReconciliationStore


@pytest.fixture
def sample_members():
    """Three members, one of them with payment history."""
    return [
        make_member(1, "John Smith", "716-555-0100", 1000.0),
        make_member(
            2,
            "Aisha Karim",
            "(347) 555-0199",
            2400.0,
            payments=[
                Payment("p-2", "2024-02-01", 200.0, "February"),
                Payment("p-1", "2024-01-01", 200.0, "January"),
            ],
            email="aisha@example.com",
            frequency=Frequency.MONTHLY,
            notes="Pays by transfer",
        ),
        make_member(3, "Omar Farouk", "", 600.0, frequency=Frequency.ONE_TIME),
    ]


@pytest.fixture
def gateway(sample_members):
    return FakeGateway([member_to_record(m) for m in sample_members])


@pytest.fixture
def empty_gateway():
    return FakeGateway()


@pytest.fixture
def store(gateway):
    s = ReconciliationStore(gateway)
    s.attach()
    return s


@pytest.fixture
def sqlite_gateway(tmp_path: Path) -> SqliteGateway:
    gw = SqliteGateway(tmp_path / "test.db")
    gw.init_db()
    return gw
