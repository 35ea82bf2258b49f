"""
Fixed column layouts of the portal tables.

Rows cross the store boundary as plain positional string lists; these
schemas are the only place that knows which position means what. Column
order is a wire contract with the live spreadsheet: append new columns at
the end and bump ``version``, never reorder.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple


def column_letter(index: int) -> str:
    """1-based column index to spreadsheet letters (1 -> A, 27 -> AA)."""
    if index < 1:
        raise ValueError("column index must be >= 1")
    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: Tuple[str, ...]
    version: int = 1

    @property
    def width(self) -> int:
        return len(self.columns)

    def header_range(self) -> str:
        return f"A1:{column_letter(self.width)}1"

    def pad(self, row: Sequence[str]) -> List[str]:
        """Right-pad a short row with empty cells up to the schema width."""
        cells = [str(cell) if cell is not None else "" for cell in row]
        if len(cells) < self.width:
            cells.extend([""] * (self.width - len(cells)))
        return cells


EVENTS = TableSchema(
    "events",
    ("id", "title", "description", "date_iso", "location", "rsvp_form", "visible", "created_at"),
)

NOTICES = TableSchema(
    "notices",
    ("id", "title", "body_html", "category", "posted_at_iso", "visible", "created_at"),
)

REGISTRATIONS = TableSchema(
    "registrations",
    ("id", "event_id", "name", "email", "phone", "department", "year", "additional_info", "created_at_iso"),
)

CHAT_LOGS = TableSchema(
    "chat_logs",
    ("timestamp", "user_email", "user_name", "question", "model_used", "status",
     "raw_response", "final_answer_html", "source_links", "error"),
)

ALL_TABLES: Dict[str, TableSchema] = {
    schema.name: schema for schema in (EVENTS, NOTICES, REGISTRATIONS, CHAT_LOGS)
}
