"""
Shared fixtures for the portal service tests.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from service_portal.app.domain.schema import ALL_TABLES

_A1_RANGE = re.compile(r"^([A-Z]+)(\d+)?(?::([A-Z]+)(\d+)?)?$")


def _column_index(letters: str) -> int:
    index = 0
    for letter in letters:
        index = index * 26 + (ord(letter) - ord("A") + 1)
    return index - 1


class InMemoryTableStore:
    """Table store backed by lists of rows, with A1-style range support."""

    def __init__(self, tables: Optional[Dict[str, List[List[str]]]] = None):
        self.tables: Dict[str, List[List[str]]] = {name: [] for name in ALL_TABLES}
        for name, rows in (tables or {}).items():
            self.tables[name] = [list(row) for row in rows]
        self.appends: List[tuple] = []
        self.updates: List[tuple] = []
        self.fail_reads: Optional[Exception] = None
        self.fail_writes: Optional[Exception] = None

    def seed_headers(self):
        for name, schema in ALL_TABLES.items():
            if not self.tables[name]:
                self.tables[name].append(list(schema.columns))
        return self

    async def append(self, table: str, row: Sequence[Any]) -> None:
        if self.fail_writes is not None:
            raise self.fail_writes
        cells = ["" if value is None else str(value) for value in row]
        self.tables.setdefault(table, []).append(cells)
        self.appends.append((table, cells))

    async def read_range(self, table: str, cell_range: Optional[str] = None) -> List[List[str]]:
        if self.fail_reads is not None:
            raise self.fail_reads
        rows = [list(row) for row in self.tables.get(table, [])]
        if not cell_range or cell_range == "A:Z":
            return rows

        match = _A1_RANGE.match(cell_range)
        start_col = _column_index(match.group(1))
        start_row = int(match.group(2) or 1) - 1
        end_col = _column_index(match.group(3) or match.group(1))
        end_row = int(match.group(4)) - 1 if match.group(4) else len(rows) - 1

        selected = []
        for row in rows[start_row:end_row + 1]:
            cells = row[start_col:end_col + 1]
            if cells:
                selected.append(cells)
        return selected

    async def read_all(self, table: str) -> List[List[str]]:
        return await self.read_range(table)

    async def update_range(self, table: str, cell_range: str, rows: Sequence[Sequence[Any]]) -> None:
        if self.fail_writes is not None:
            raise self.fail_writes
        match = _A1_RANGE.match(cell_range)
        start_col = _column_index(match.group(1))
        start_row = int(match.group(2) or 1) - 1
        target = self.tables.setdefault(table, [])
        for offset, values in enumerate(rows):
            index = start_row + offset
            while len(target) <= index:
                target.append([])
            row = target[index]
            needed = start_col + len(values)
            if len(row) < needed:
                row.extend([""] * (needed - len(row)))
            row[start_col:needed] = [str(value) for value in values]
        self.updates.append((table, cell_range, [list(values) for values in rows]))


class FrozenClock:
    """Settable clock usable as a datetime or epoch-seconds source."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return FrozenClock(now)


@pytest.fixture
def store():
    return InMemoryTableStore().seed_headers()


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key):
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key):
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
