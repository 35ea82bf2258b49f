"""
Repositories mapping table rows to domain records.

Every read scans the whole table: the store has no index and no
incremental reads. Writes are single appends. Hiding a record appends a copy
with ``visible=FALSE``; readers keep the last row seen for each id.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from shared.errors import NotFoundError
from shared.logging import get_logger
from ..adapters.sheets_client import TableStore
from .models import (
    ChatLogEntry,
    Event,
    Notice,
    Registration,
    generate_id,
    isoformat_utc,
    parse_iso_datetime,
    utcnow,
)
from .schema import ALL_TABLES, CHAT_LOGS, EVENTS, NOTICES, REGISTRATIONS

Clock = Callable[[], datetime]
Record = TypeVar("Record", Event, Notice)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def data_rows(rows: Sequence[Sequence[str]]) -> List[Sequence[str]]:
    """Drop the header row and blank rows."""
    return [row for row in rows[1:] if any(cell for cell in row)]


def latest_by_id(records: Sequence[Record]) -> List[Record]:
    """Collapse records sharing an id, keeping the last one in sheet order.

    Records with an empty id cannot be correlated and are all kept.
    """
    positions: Dict[str, int] = {}
    result: List[Record] = []
    for record in records:
        if not record.id:
            result.append(record)
            continue
        if record.id in positions:
            result[positions[record.id]] = record
        else:
            positions[record.id] = len(result)
            result.append(record)
    return result


class EventRepository:
    """Events table."""

    def __init__(self, store: TableStore, *, clock: Clock = utcnow) -> None:
        self.store = store
        self._clock = clock
        self.logger = get_logger("portal.events")

    async def list_all(self) -> List[Event]:
        rows = await self.store.read_all(EVENTS.name)
        return latest_by_id([Event.from_row(row) for row in data_rows(rows)])

    async def list_upcoming(self) -> List[Event]:
        """Visible events starting now or later, soonest first."""
        now = self._clock()
        upcoming = [
            event for event in await self.list_all()
            if event.visible and event.starts_at is not None and event.starts_at >= now
        ]
        return sorted(upcoming, key=lambda event: event.starts_at)

    async def find_upcoming(self, event_id: str) -> Optional[Event]:
        for event in await self.list_upcoming():
            if event.id == event_id:
                return event
        return None

    async def create(
        self,
        *,
        title: str,
        description: str,
        date_iso: str,
        location: str,
        rsvp_form: str = "",
        visible: bool = True,
    ) -> Event:
        now = self._clock()
        event = Event(
            id=generate_id("event", now),
            title=title,
            description=description,
            date_iso=date_iso,
            location=location,
            rsvp_form=rsvp_form,
            visible=visible,
            created_at=isoformat_utc(now),
        )
        await self.store.append(EVENTS.name, event.to_row())
        self.logger.info("Event created", event_id=event.id)
        return event

    async def hide(self, event_id: str) -> Event:
        current = {event.id: event for event in await self.list_all()}.get(event_id)
        if current is None:
            raise NotFoundError("Event not found", details={"event_id": event_id})
        hidden = replace(current, visible=False)
        await self.store.append(EVENTS.name, hidden.to_row())
        self.logger.info("Event hidden", event_id=event_id)
        return hidden


class NoticeRepository:
    """Notices table."""

    def __init__(self, store: TableStore, *, clock: Clock = utcnow) -> None:
        self.store = store
        self._clock = clock
        self.logger = get_logger("portal.notices")

    async def list_all(self) -> List[Notice]:
        """Every notice, newest posting first."""
        rows = await self.store.read_all(NOTICES.name)
        notices = latest_by_id([Notice.from_row(row) for row in data_rows(rows)])
        return sorted(notices, key=lambda notice: notice.posted_at or _EPOCH, reverse=True)

    async def list_visible(self) -> List[Notice]:
        return [notice for notice in await self.list_all() if notice.visible]

    async def find_visible(self, notice_id: str) -> Optional[Notice]:
        for notice in await self.list_visible():
            if notice.id == notice_id:
                return notice
        return None

    async def list_recent(self, days: int) -> List[Notice]:
        cutoff = self._clock() - timedelta(days=days)
        return [
            notice for notice in await self.list_visible()
            if notice.posted_at is not None and notice.posted_at >= cutoff
        ]

    async def create(
        self,
        *,
        title: str,
        body_html: str,
        category: str,
        posted_at_iso: Optional[str] = None,
        visible: bool = True,
    ) -> Notice:
        now = self._clock()
        notice = Notice(
            id=generate_id("notice", now),
            title=title,
            body_html=body_html,
            category=category,
            posted_at_iso=posted_at_iso or isoformat_utc(now),
            visible=visible,
            created_at=isoformat_utc(now),
        )
        await self.store.append(NOTICES.name, notice.to_row())
        self.logger.info("Notice created", notice_id=notice.id, category=category)
        return notice

    async def hide(self, notice_id: str) -> Notice:
        current = {notice.id: notice for notice in await self.list_all()}.get(notice_id)
        if current is None:
            raise NotFoundError("Notice not found", details={"notice_id": notice_id})
        hidden = replace(current, visible=False)
        await self.store.append(NOTICES.name, hidden.to_row())
        self.logger.info("Notice hidden", notice_id=notice_id)
        return hidden


class RegistrationRepository:
    """Registrations table. Uniqueness is not enforced by the store."""

    def __init__(self, store: TableStore, *, clock: Clock = utcnow) -> None:
        self.store = store
        self._clock = clock
        self.logger = get_logger("portal.registrations")

    async def list_all(self) -> List[Registration]:
        rows = await self.store.read_all(REGISTRATIONS.name)
        return [Registration.from_row(row) for row in data_rows(rows)]

    async def list_for_event(self, event_id: str) -> List[Registration]:
        return [registration for registration in await self.list_all() if registration.event_id == event_id]

    async def find(self, event_id: str, email: str) -> Optional[Registration]:
        """Linear scan for an (event_id, email) pair; email compared case-insensitively."""
        wanted = email.strip().lower()
        for registration in await self.list_all():
            if registration.event_id == event_id and registration.email.strip().lower() == wanted:
                return registration
        return None

    async def add(
        self,
        *,
        event_id: str,
        name: str,
        email: str,
        phone: str = "",
        department: str = "",
        year: str = "",
        additional_info: str = "",
    ) -> Registration:
        now = self._clock()
        registration = Registration(
            id=generate_id("reg", now),
            event_id=event_id,
            name=name,
            email=email,
            phone=phone,
            department=department,
            year=year,
            additional_info=additional_info,
            registered_at=isoformat_utc(now),
        )
        await self.store.append(REGISTRATIONS.name, registration.to_row())
        self.logger.info("Registration added", registration_id=registration.id, event_id=event_id)
        return registration


class ChatLogRepository:
    """Chat logs table."""

    def __init__(self, store: TableStore) -> None:
        self.store = store

    async def log(self, entry: ChatLogEntry) -> None:
        await self.store.append(CHAT_LOGS.name, entry.to_row())

    async def recent(self, limit: int = 50) -> List[ChatLogEntry]:
        """The last ``limit`` rows of the table, newest first."""
        if limit <= 0:
            return []
        rows = data_rows(await self.store.read_all(CHAT_LOGS.name))
        return [ChatLogEntry.from_row(row) for row in reversed(rows[-limit:])]


async def initialize_tables(store: TableStore) -> Dict[str, bool]:
    """Write the header row of every table whose first row is empty.

    Returns ``{table: initialized}``.
    """
    logger = get_logger("portal.tables")
    result: Dict[str, bool] = {}
    for name, schema in ALL_TABLES.items():
        existing = await store.read_range(name, schema.header_range())
        if existing and any(cell for cell in existing[0]):
            result[name] = False
            continue
        await store.update_range(name, schema.header_range(), [list(schema.columns)])
        logger.info("Initialized table header", table=name, version=schema.version)
        result[name] = True
    return result


def parse_registered_at(registration: Registration) -> datetime:
    return parse_iso_datetime(registration.registered_at) or _EPOCH
