"""
Row-oriented client for the Google Sheets values API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence, Type
from urllib.parse import quote

import httpx

from shared.errors import ConfigurationError, PortalException, StoreReadError, StoreWriteError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..auth.service_account import TokenCache

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_RANGE = "A:Z"

Row = List[str]


class TableStore(Protocol):
    """The only operations repositories may rely on. There is no delete."""

    async def append(self, table: str, row: Sequence[Any]) -> None: ...

    async def read_range(self, table: str, cell_range: Optional[str] = None) -> List[Row]: ...

    async def update_range(self, table: str, cell_range: str, rows: Sequence[Sequence[Any]]) -> None: ...

    async def read_all(self, table: str) -> List[Row]: ...


def _cell(value: Any) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if value is None:
        return ""
    return str(value)


class SheetStore:
    """Append/read/overwrite rows of one spreadsheet, authenticating lazily."""

    def __init__(
        self,
        spreadsheet_id: str,
        token_cache: TokenCache,
        *,
        base_url: str = SHEETS_API_BASE,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.token_cache = token_cache
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger("portal.sheets")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._metrics = metrics

    async def close(self) -> None:
        await self._client.aclose()

    async def append(self, table: str, row: Sequence[Any]) -> None:
        """Append one row after the last non-empty row of ``table``."""
        await self._request(
            "POST",
            f"{table}!{DEFAULT_RANGE}",
            suffix=":append",
            operation="append",
            error_cls=StoreWriteError,
            params={"valueInputOption": "RAW"},
            json={"values": [[_cell(value) for value in row]]},
        )

    async def read_range(self, table: str, cell_range: Optional[str] = None) -> List[Row]:
        """Rows of ``table`` (header included) or of a narrower range."""
        response = await self._request(
            "GET",
            f"{table}!{cell_range or DEFAULT_RANGE}",
            operation="read",
            error_cls=StoreReadError,
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreReadError("Failed to read range", "Malformed response body") from exc
        values = payload.get("values") or []
        return [[_cell(value) for value in row] for row in values]

    async def read_all(self, table: str) -> List[Row]:
        return await self.read_range(table)

    async def update_range(self, table: str, cell_range: str, rows: Sequence[Sequence[Any]]) -> None:
        """Overwrite a rectangular block starting at ``cell_range``."""
        await self._request(
            "PUT",
            f"{table}!{cell_range}",
            operation="update",
            error_cls=StoreWriteError,
            params={"valueInputOption": "RAW"},
            json={"values": [[_cell(value) for value in row] for row in rows]},
        )

    async def _request(
        self,
        method: str,
        a1_range: str,
        *,
        operation: str,
        error_cls: Type[PortalException],
        suffix: str = "",
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        if not self.spreadsheet_id:
            raise ConfigurationError("Google Sheet ID not configured")

        url = f"{self.base_url}/{self.spreadsheet_id}/values/{quote(a1_range, safe='!:')}{suffix}"

        # A rejected credential gets exactly one fresh exchange.
        for attempt in (1, 2):
            credential = await self.token_cache.get_token()
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {credential.value}"},
                )
            except httpx.HTTPError as exc:
                self._record(operation, "error")
                self.logger.error("Sheets transport failure", operation=operation, range=a1_range, error=str(exc))
                raise error_cls(message=str(exc), details={"range": a1_range}) from exc

            if response.status_code == 401 and attempt == 1:
                self.logger.warning("Sheets API rejected credential, re-authenticating", range=a1_range)
                self.token_cache.invalidate()
                continue
            break

        if response.is_error:
            self._record(operation, "error")
            reason = _error_message(response)
            self.logger.error(
                "Sheets API error",
                operation=operation,
                range=a1_range,
                status_code=response.status_code,
                reason=reason,
            )
            raise error_cls(message=reason, details={"range": a1_range, "status_code": response.status_code})

        self._record(operation, "ok")
        return response

    def _record(self, operation: str, status: str) -> None:
        if self._metrics is not None:
            self._metrics.increment_counter("store_requests_total", operation=operation, status=status)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"HTTP {response.status_code}"
