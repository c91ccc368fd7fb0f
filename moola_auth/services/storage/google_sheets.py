"""
Google Sheets Audit Storage

DESIGN DECISION: The authentication audit trail can be mirrored to a
Google Sheet so the account owner can review sign-in attempts and lockouts
without any database. Rows are only ever appended, which matches audit
semantics.

Only audit events go here. Credential material (the user record, attempt
counter, lockout deadline) stays in the on-device key-value store.

TRADEOFFS:
- One device produces a handful of events a day; reads load the whole sheet
- Filtering happens in Python
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from moola_auth.config import GoogleSheetsSettings, get_settings
from moola_auth.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventType,
    AuditSeverity,
)
from moola_auth.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


class GoogleSheetsClient:
    """
    Opens the audit worksheet with a service account.

    The authorized client and the worksheet handle are cached after the
    first successful call.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._settings = settings or get_settings().google_sheets
        self._client: Optional[gspread.Client] = None
        self._worksheet: Optional[gspread.Worksheet] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        if self._client is not None:
            return self._client

        path = self._settings.credentials_path
        try:
            credentials = Credentials.from_service_account_file(path, scopes=SCOPES)
        except FileNotFoundError:
            raise ConnectionError(f"Service account file not found: {path}")
        except ValueError as e:
            raise ConnectionError(f"Service account file unusable: {e}")

        self._client = gspread.authorize(credentials)
        return self._client

    def audit_worksheet(self) -> gspread.Worksheet:
        """
        The worksheet holding audit rows.

        Created with a header row on first use.

        Raises:
            ConnectionError: Spreadsheet missing, or the sheet has foreign columns
        """
        if self._worksheet is not None:
            return self._worksheet

        try:
            spreadsheet = self.connect().open_by_key(self._settings.spreadsheet_id)
        except gspread.SpreadsheetNotFound:
            raise ConnectionError(f"Spreadsheet not found: {self._settings.spreadsheet_id}")

        title = self._settings.audit_sheet_name
        try:
            worksheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            worksheet = spreadsheet.add_worksheet(title=title, rows=1000, cols=len(AUDIT_COLUMNS))
            worksheet.append_row(AUDIT_COLUMNS)
            logger.info("audit_worksheet_created", title=title)
        else:
            header = worksheet.row_values(1)
            if header and header != AUDIT_COLUMNS:
                raise ConnectionError(f"Worksheet '{title}' does not have the audit columns")

        self._worksheet = worksheet
        return worksheet


def event_from_row(row: list[str]) -> AuditEvent:
    """
    Rebuild an AuditEvent from a worksheet row.

    Raises:
        KeyError: A required column is missing
        ValueError: A cell does not parse
    """
    record = dict(zip(AUDIT_COLUMNS, row))

    def cell(name: str) -> Optional[str]:
        return record.get(name) or None

    correlation_id = cell("correlation_id")
    return AuditEvent(
        event_id=UUID(record["event_id"]),
        timestamp=datetime.fromisoformat(record["timestamp"]),
        event_type=AuditEventType(record["event_type"]),
        severity=AuditSeverity(cell("severity") or AuditSeverity.INFO.value),
        entity_type=cell("entity_type"),
        entity_id=cell("entity_id"),
        correlation_id=UUID(correlation_id) if correlation_id else None,
        description=record.get("description", ""),
        details=json.loads(cell("details_json") or "{}"),
        error_message=cell("error_message"),
        is_user_action=(cell("is_user_action") or "").lower() == "true",
    )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """Append-only audit store, one event per worksheet row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._client.audit_worksheet().append_row(
                event.to_sheets_row(),
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to append audit event: {e}")
        return True

    def _load_events(self) -> list[AuditEvent]:
        try:
            rows = self._client.audit_worksheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read audit events: {e}")

        events = []
        for row in rows[1:]:
            if not any(row):
                continue
            try:
                events.append(event_from_row(row))
            except (KeyError, ValueError):
                # Hand-edited or truncated row
                logger.warning("audit_row_skipped", first_cell=row[0])
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, oldest first."""
        events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Newest first."""
        events = sorted(self._load_events(), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
