"""
Domain records mapped positionally from table rows.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .schema import CHAT_LOGS, EVENTS, NOTICES, REGISTRATIONS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """``2024-05-01T10:00:00.000Z`` style timestamp."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 with ``Z`` or offset suffix; naive values are UTC. None if unparseable."""
    if not value:
        return None
    candidate = value.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_id(kind: str, now: Optional[datetime] = None) -> str:
    """Process-local unique id: ``<kind>_<epoch-ms>_<random>``."""
    moment = now or utcnow()
    return f"{kind}_{int(moment.timestamp() * 1000)}_{uuid.uuid4().hex[:6]}"


def parse_flag(cell: str) -> bool:
    return cell.strip().upper() == "TRUE"


def format_flag(value: bool) -> str:
    return "TRUE" if value else "FALSE"


@dataclass(frozen=True)
class Event:
    id: str
    title: str
    description: str
    date_iso: str
    location: str
    rsvp_form: str = ""
    visible: bool = True
    created_at: str = ""

    @property
    def starts_at(self) -> Optional[datetime]:
        return parse_iso_datetime(self.date_iso)

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Event":
        cells = EVENTS.pad(row)
        return cls(
            id=cells[0],
            title=cells[1],
            description=cells[2],
            date_iso=cells[3],
            location=cells[4],
            rsvp_form=cells[5],
            visible=parse_flag(cells[6]),
            created_at=cells[7],
        )

    def to_row(self) -> List[str]:
        return [
            self.id,
            self.title,
            self.description,
            self.date_iso,
            self.location,
            self.rsvp_form,
            format_flag(self.visible),
            self.created_at,
        ]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Notice:
    id: str
    title: str
    body_html: str
    category: str
    posted_at_iso: str
    visible: bool = True
    created_at: str = ""

    @property
    def posted_at(self) -> Optional[datetime]:
        return parse_iso_datetime(self.posted_at_iso)

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Notice":
        cells = NOTICES.pad(row)
        return cls(
            id=cells[0],
            title=cells[1],
            body_html=cells[2],
            category=cells[3],
            posted_at_iso=cells[4],
            visible=parse_flag(cells[5]),
            created_at=cells[6],
        )

    def to_row(self) -> List[str]:
        return [
            self.id,
            self.title,
            self.body_html,
            self.category,
            self.posted_at_iso,
            format_flag(self.visible),
            self.created_at,
        ]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Registration:
    id: str
    event_id: str
    name: str
    email: str
    phone: str = ""
    department: str = ""
    year: str = ""
    additional_info: str = ""
    registered_at: str = ""

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Registration":
        cells = REGISTRATIONS.pad(row)
        return cls(
            id=cells[0],
            event_id=cells[1],
            name=cells[2],
            email=cells[3],
            phone=cells[4],
            department=cells[5],
            year=cells[6],
            additional_info=cells[7],
            registered_at=cells[8],
        )

    def to_row(self) -> List[str]:
        return [
            self.id,
            self.event_id,
            self.name,
            self.email,
            self.phone,
            self.department,
            self.year,
            self.additional_info,
            self.registered_at,
        ]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


CHAT_STATUS_SUCCESS = "success"
CHAT_STATUS_ERROR = "error"


@dataclass(frozen=True)
class ChatLogEntry:
    timestamp: str
    question: str
    model_used: str
    status: str
    final_answer_html: str
    user_email: str = ""
    user_name: str = ""
    raw_response: str = ""
    source_links: str = ""
    error: str = ""

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "ChatLogEntry":
        cells = CHAT_LOGS.pad(row)
        status = cells[5] if cells[5] in (CHAT_STATUS_SUCCESS, CHAT_STATUS_ERROR) else CHAT_STATUS_ERROR
        return cls(
            timestamp=cells[0],
            user_email=cells[1],
            user_name=cells[2],
            question=cells[3],
            model_used=cells[4],
            status=status,
            raw_response=cells[6],
            final_answer_html=cells[7],
            source_links=cells[8],
            error=cells[9],
        )

    def to_row(self) -> List[str]:
        return [
            self.timestamp,
            self.user_email,
            self.user_name,
            self.question,
            self.model_used,
            self.status,
            self.raw_response,
            self.final_answer_html,
            self.source_links,
            self.error,
        ]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
