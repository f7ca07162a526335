"""
importer.py
Bulk import: duplicate detection against the current roster, per-conflict
resolution, and translation into insert/update batches.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable

from csv_io import Candidate, parse_csv
from models import Member

logger = logging.getLogger(__name__)

NAME_MATCH = "Name Match"
PHONE_MATCH = "Phone Match"

# A phone needs more digits than this to count as a match on its own
MIN_PHONE_DIGITS = 6


class Resolution(str, Enum):
    SKIP = "skip"
    UPDATE = "update"
    CREATE = "create"


@dataclass(frozen=True)
class Conflict:
    candidate: Candidate
    existing: Member
    reason: str
    resolution: Resolution = Resolution.SKIP


@dataclass
class ImportPlan:
    clean: list[Candidate] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.conflicts)

    def set_resolution(self, index: int, resolution: Resolution) -> None:
        self.conflicts[index] = replace(self.conflicts[index], resolution=Resolution(resolution))

    def set_all(self, resolution: Resolution) -> None:
        resolution = Resolution(resolution)
        self.conflicts = [replace(c, resolution=resolution) for c in self.conflicts]

    def build_batches(self, start_id: int) -> tuple[list[Member], list[Member]]:
        """
        Returns (inserts, updates). Inserts are the clean rows followed by the
        `create` conflicts, numbered from start_id. Updates are `update`
        conflicts merged into their existing member.
        """
        to_insert = list(self.clean)
        updates: list[Member] = []
        for c in self.conflicts:
            if c.resolution == Resolution.CREATE:
                to_insert.append(c.candidate)
            elif c.resolution == Resolution.UPDATE:
                updates.append(merge_candidate(c.existing, c.candidate))

        inserts = [candidate_to_member(cand, start_id + i) for i, cand in enumerate(to_insert)]
        return inserts, updates


def normalize_name(name: str) -> str:
    return name.casefold().strip()


def normalize_phone(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def find_match(candidate: Candidate, existing: Iterable[Member]) -> tuple[Member, str] | None:
    """First existing member matching by name, or by a phone with more than 6 digits."""
    name = normalize_name(candidate.name)
    phone = normalize_phone(candidate.phone)
    for member in existing:
        if normalize_name(member.name) == name:
            return member, NAME_MATCH
        member_phone = normalize_phone(member.phone)
        if len(phone) > MIN_PHONE_DIGITS and len(member_phone) > MIN_PHONE_DIGITS and phone == member_phone:
            return member, PHONE_MATCH
    return None


def analyze_duplicates(candidates: Iterable[Candidate], existing: Iterable[Member]) -> ImportPlan:
    existing = list(existing)
    plan = ImportPlan()
    for cand in candidates:
        match = find_match(cand, existing)
        if match is None:
            plan.clean.append(cand)
        else:
            member, reason = match
            plan.conflicts.append(Conflict(candidate=cand, existing=member, reason=reason))
    return plan


def candidate_to_member(candidate: Candidate, member_id: int) -> Member:
    return Member(
        id=member_id,
        name=candidate.name,
        phone=candidate.phone,
        email=candidate.email,
        committed_amount=candidate.committed_amount,
        frequency=candidate.frequency,
        payments=(),
        notes=candidate.notes,
    )


def merge_candidate(existing: Member, candidate: Candidate) -> Member:
    # id and payments always come from the existing member
    return replace(
        existing,
        name=candidate.name,
        phone=candidate.phone,
        email=candidate.email,
        committed_amount=candidate.committed_amount,
        frequency=candidate.frequency,
        notes=candidate.notes,
    )


async def commit_import(store, plan: ImportPlan) -> tuple[int, int]:
    """
    Hand the plan's batches to the store. Returns (inserted, updated).
    Raises store.SyncError when any chunk fails.
    """
    inserts, updates = plan.build_batches(store.next_id())
    await store.bulk_write(inserts, updates)
    return len(inserts), len(updates)


@dataclass
class StagedImport:
    plan: ImportPlan
    warnings: list[str]
    committed: bool = False


async def stage_import(store, text: str) -> StagedImport:
    """
    Parse and analyze an upload. Without conflicts the import is committed
    straight away; otherwise the plan waits for resolutions.
    Raises csv_io.CsvFormatError on a fatal parse error.
    """
    parsed = parse_csv(text)
    plan = analyze_duplicates(parsed.candidates, store.members)
    logger.info(
        "Import staged: %d rows, %d clean, %d conflicts, %d warnings",
        len(parsed.candidates), len(plan.clean), len(plan.conflicts), len(parsed.warnings),
    )
    staged = StagedImport(plan=plan, warnings=parsed.warnings)
    if not plan.needs_confirmation:
        await commit_import(store, plan)
        staged.committed = True
    return staged
