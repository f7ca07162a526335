"""
csv_io.py
CSV parsing for member import, plus template and roster export.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

from models import Frequency, Member

EXPORT_COLUMNS = ["Name", "Phone", "Email", "Committed Amount", "Frequency", "Notes"]
TEMPLATE_EXAMPLE = ["Brother Ahmed Ali", "555-123-4567", "ahmed@example.com", "1200", "Yearly", "New neighbor"]


class CsvFormatError(ValueError):
    """The file as a whole cannot be imported."""


@dataclass(frozen=True)
class Candidate:
    """One parsed import row: a member without id or payments."""
    name: str
    phone: str = ""
    email: str = ""
    committed_amount: float = 0.0
    frequency: Frequency = Frequency.YEARLY
    notes: str = ""


@dataclass
class ParseResult:
    candidates: list[Candidate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def split_line(line: str) -> list[str]:
    """
    Split one CSV line. A double quote toggles quoted mode and commas inside
    quotes are kept; surrounding quotes are stripped from each value.
    """
    cells: list[str] = []
    cell = ""
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            cells.append(cell.strip())
            cell = ""
        else:
            cell += ch
    cells.append(cell.strip())
    return [c.strip('"').strip() for c in cells]


def parse_amount(raw: str) -> float:
    cleaned = re.sub(r"[^0-9.]", "", raw)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def parse_frequency_cell(raw: str) -> Frequency:
    val = raw.lower()
    if "month" in val:
        return Frequency.MONTHLY
    if "one" in val:
        return Frequency.ONE_TIME
    return Frequency.YEARLY


def decode_upload(data: bytes) -> str:
    # Drops a UTF-8 BOM; undecodable bytes (e.g. a Latin-1 export) become U+FFFD
    return data.decode("utf-8-sig", errors="replace")


def parse_csv(text: str) -> ParseResult:
    """
    Parse import text into candidates.
    Header cells are matched case-insensitively by substring (name, phone,
    email, amount, frequency, note). No name column is fatal; a row without
    a name is skipped with a warning.
    """
    lines = re.split(r"\r\n|\n", text)
    headers = [h.lower() for h in split_line(lines[0])] if lines and lines[0].strip() else []
    if not headers:
        raise CsvFormatError("Invalid CSV format: Header row missing.")

    def index_of(key: str) -> int | None:
        return next((i for i, h in enumerate(headers) if key in h), None)

    name_idx = index_of("name")
    if name_idx is None:
        raise CsvFormatError('Invalid CSV: "Name" column is required.')
    phone_idx = index_of("phone")
    email_idx = index_of("email")
    amount_idx = index_of("amount")
    freq_idx = index_of("frequency")
    notes_idx = index_of("note")

    result = ParseResult()
    for lineno, raw_line in enumerate(lines[1:], start=2):
        line = raw_line.strip()
        if not line:
            continue
        row = split_line(line)

        def cell(idx: int | None) -> str:
            if idx is None or idx >= len(row):
                return ""
            return row[idx]

        name = cell(name_idx)
        if not name:
            result.warnings.append(f"Row {lineno}: Name is missing. Skipped.")
            continue

        amount_raw = cell(amount_idx)
        freq_raw = cell(freq_idx)
        result.candidates.append(
            Candidate(
                name=name,
                phone=cell(phone_idx),
                email=cell(email_idx),
                committed_amount=parse_amount(amount_raw) if amount_raw else 0.0,
                frequency=parse_frequency_cell(freq_raw) if freq_raw else Frequency.YEARLY,
                notes=cell(notes_idx),
            )
        )
    return result


def template_csv_bytes() -> bytes:
    df = pd.DataFrame([TEMPLATE_EXAMPLE], columns=EXPORT_COLUMNS)
    return df.to_csv(index=False).encode("utf-8")


def members_to_csv_bytes(members: Iterable[Member]) -> bytes:
    rows = [
        [m.name, m.phone, m.email, m.committed_amount, m.frequency.value, m.notes]
        for m in members
    ]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    return df.to_csv(index=False).encode("utf-8")
