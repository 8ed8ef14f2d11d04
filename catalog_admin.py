"""
Catalog administration backed by a Google Sheets worksheet.

Lists, creates, updates and deletes catalog records, and checks admin emails
against an allow-list kept in a second worksheet of the same spreadsheet.
"""

import logging
import os
import uuid
from typing import Any, Dict, List, Optional

import gspread
from google.oauth2 import service_account

from config import AdminConfig, SHEETS_SCOPES
from error_handler import Forbidden, InvalidInput, RecordNotFound, Unauthorized, UpstreamUnavailable
from input_validation import InputValidator


CATALOG_HEADERS = [
    "ID", "Album Name", "Artist", "Album Year", "Status", "Gift", "Gender", "Image URL"
]
ADMIN_HEADERS = ["Email", "Name", "Added"]


def open_spreadsheet(config: AdminConfig, logger: Optional[logging.Logger] = None) -> gspread.Spreadsheet:
    """Authorizes with the service account file when present, else the default service account."""
    log = logger or logging.getLogger(__name__)
    try:
        if config.service_account_file and os.path.exists(config.service_account_file):
            credentials = service_account.Credentials.from_service_account_file(
                config.service_account_file,
                scopes=SHEETS_SCOPES
            )
            gc = gspread.authorize(credentials)
        else:
            gc = gspread.service_account()
        return gc.open_by_key(config.spreadsheet_id)
    except gspread.SpreadsheetNotFound as e:
        log.error(f"Spreadsheet not found: {config.spreadsheet_id}")
        raise UpstreamUnavailable("No se pudo abrir el catálogo.") from e
    except Exception as e:
        log.error(f"Failed to initialize Google Sheets client: {e}")
        raise UpstreamUnavailable("No se pudo abrir el catálogo.") from e


def get_or_create_worksheet(sheet: Any, title: str, headers: List[str], logger: Optional[logging.Logger] = None):
    log = logger or logging.getLogger(__name__)
    try:
        return sheet.worksheet(title)
    except gspread.WorksheetNotFound:
        log.info(f"Worksheet '{title}' not found; creating it.")
        worksheet = sheet.add_worksheet(title=title, rows=1000, cols=len(headers))
        worksheet.append_row(headers)
        return worksheet


def _join_values(value: Any) -> str:
    """Gender may arrive as a list, an option object or plain text."""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if v not in (None, ""))
    if isinstance(value, dict):
        for key in ('name', 'value', 'text', 'result'):
            if value.get(key):
                return str(value[key])
        return ""
    return "" if value is None else str(value)


def map_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Worksheet row (keyed by header) -> admin record."""
    return {
        'id': str(row.get("ID") or ""),
        'album': str(row.get("Album Name") or ""),
        'artist': str(row.get("Artist") or ""),
        'year': str(row.get("Album Year") or ""),
        'status': str(row.get("Status") or ""),
        'gift': str(row.get("Gift") or ""),
        'gender': _join_values(row.get("Gender")),
        'image': str(row.get("Image URL") or ""),
    }


class CatalogStore:
    """CRUD over the catalog worksheet."""

    def __init__(self, worksheet: Any, logger: Optional[logging.Logger] = None):
        self.worksheet = worksheet
        self.logger = logger or logging.getLogger(__name__)
        self.validator = InputValidator(self.logger)

    @classmethod
    def from_config(cls, config: AdminConfig, logger: Optional[logging.Logger] = None) -> "CatalogStore":
        sheet = open_spreadsheet(config, logger)
        return cls(get_or_create_worksheet(sheet, config.catalog_worksheet, CATALOG_HEADERS, logger), logger)

    def list_records(self) -> List[Dict[str, Any]]:
        rows = self.worksheet.get_all_records()
        records = [map_record(row) for row in rows if row.get("ID")]
        self.logger.info(f"Loaded {len(records)} catalog records.")
        return records

    def _payload_fields(self, payload: Dict[str, Any]) -> Dict[str, str]:
        """Fields written on every create/update plus the optional ones present in the payload."""
        fields = {
            "Album Name": self.validator.sanitize_text(payload.get('album')),
            "Artist": self.validator.sanitize_text(payload.get('artist')),
        }
        if payload.get('year'):
            fields["Album Year"] = self.validator.sanitize_text(payload['year'], max_length=10)
        if payload.get('status'):
            fields["Status"] = self.validator.sanitize_text(payload['status'])
        if payload.get('gift'):
            fields["Gift"] = self.validator.sanitize_text(payload['gift'])
        if payload.get('gender'):
            fields["Gender"] = self.validator.sanitize_text(_join_values(payload['gender']))
        if payload.get('image'):
            fields["Image URL"] = self.validator.validate_url(str(payload['image']))
        return fields

    def _find_row(self, record_id: Any) -> int:
        record_id = str(record_id or "").strip()
        if not record_id:
            raise RecordNotFound("Falta el id del registro")
        cell = self.worksheet.find(record_id, in_column=1)
        if cell is None or cell.row == 1:
            raise RecordNotFound()
        return cell.row

    def create_record(self, payload: Dict[str, Any]) -> str:
        record_id = f"rec{uuid.uuid4().hex[:14]}"
        fields = self._payload_fields(payload)
        fields["ID"] = record_id
        self.worksheet.append_row([fields.get(header, "") for header in CATALOG_HEADERS], value_input_option="USER_ENTERED")
        self.logger.info(f"Created catalog record {record_id}")
        return record_id

    def update_record(self, payload: Dict[str, Any]) -> None:
        row_number = self._find_row(payload.get('id'))
        current = self.worksheet.row_values(row_number)
        current += [""] * (len(CATALOG_HEADERS) - len(current))

        fields = self._payload_fields(payload)
        values = [fields.get(header, current[index]) for index, header in enumerate(CATALOG_HEADERS)]
        last_column = chr(ord('A') + len(CATALOG_HEADERS) - 1)
        self.worksheet.update(
            range_name=f"A{row_number}:{last_column}{row_number}",
            values=[values],
            value_input_option="USER_ENTERED"
        )
        self.logger.info(f"Updated catalog record {payload.get('id')}")

    def delete_record(self, payload: Dict[str, Any]) -> None:
        row_number = self._find_row(payload.get('id'))
        self.worksheet.delete_rows(row_number)
        self.logger.info(f"Deleted catalog record {payload.get('id')}")


class AdminAllowList:
    """Emails allowed to use the admin surface, read from the admins worksheet."""

    def __init__(self, worksheet: Any, logger: Optional[logging.Logger] = None):
        self.worksheet = worksheet
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: AdminConfig, logger: Optional[logging.Logger] = None) -> "AdminAllowList":
        sheet = open_spreadsheet(config, logger)
        return cls(get_or_create_worksheet(sheet, config.admin_worksheet, ADMIN_HEADERS, logger), logger)

    def is_allowed(self, email: str) -> bool:
        wanted = (email or "").strip().lower()
        if not wanted:
            return False
        try:
            emails = self.worksheet.col_values(1)[1:]  # skip header
        except gspread.exceptions.APIError as e:
            self.logger.error(f"Could not read admin allow-list: {e}")
            return False
        return any(str(value).strip().lower() == wanted for value in emails)


def authenticated_email(user: Optional[Dict[str, Any]]) -> str:
    """The signed-in user's normalized email. Raises Unauthorized when there is none."""
    email = (user or {}).get('email')
    if not email:
        raise Unauthorized()
    try:
        return InputValidator().validate_email_address(email)
    except InvalidInput:
        raise Unauthorized()


def authorize_admin(user: Optional[Dict[str, Any]], allow_list: AdminAllowList) -> str:
    """
    Returns the admin's email.

    Raises:
        Unauthorized: no authenticated user with an email
        Forbidden: the email is not on the allow-list
    """
    email = authenticated_email(user)
    if not allow_list.is_allowed(email):
        raise Forbidden()
    return email
