"""
Remote table access for tile records.

Both backends expose the same three calls the app needs:

    select_all()                              -> list[dict], newest first
    insert(row)                               -> dict (the stored row)
    update(tile_id, patch, expected_updated_at=None) -> dict

``update`` with ``expected_updated_at`` only writes when the stored row still
carries that timestamp; otherwise ConflictError is raised and nothing changes.
Rows are never deleted.
"""
import logging
from datetime import datetime, timezone

import gspread
import httpx
import requests
from google.oauth2.service_account import Credentials
from gspread.exceptions import APIError as SheetsAPIError
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import Client, create_client

from tile_tracker.config import ConfigError, read_service_account_file
from tile_tracker.models import TILE_COLUMNS

logger = logging.getLogger(__name__)

SHEETS_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class StoreError(Exception):
    pass


class ConflictError(StoreError):
    pass


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =========================================================
# SUPABASE
# =========================================================

class SupabaseTiles:
    def __init__(self, client: Client, table_name: str = "tiles"):
        self.client = client
        self.table_name = table_name

    @classmethod
    def from_settings(cls, settings):
        settings.require("supabase_url", "supabase_key")
        client = create_client(settings.supabase_url, settings.supabase_key)
        return cls(client, settings.table_name)

    def _table(self):
        return self.client.table(self.table_name)

    def _execute(self, what, query):
        try:
            return query.execute()
        except PostgrestAPIError as e:
            msg = getattr(e, "message", None) or str(e)
            raise StoreError(f"{what} failed: {msg}") from e
        except httpx.HTTPError as e:
            raise StoreError(f"{what} failed: {e}") from e

    def select_all(self):
        query = self._table().select("*").order("created_at", desc=True)
        return self._execute("select", query).data or []

    def insert(self, row: dict):
        data = self._execute("insert", self._table().insert(row)).data or []
        return data[0] if data else dict(row)

    def update(self, tile_id, patch: dict, expected_updated_at=None):
        patch = {**patch, "updated_at": utc_now_iso()}
        query = self._table().update(patch).eq("id", tile_id)
        if expected_updated_at is not None:
            query = query.eq("updated_at", expected_updated_at)

        data = self._execute("update", query).data or []
        if not data:
            raise ConflictError(f"Tile {tile_id} changed or no longer exists")
        return data[0]


# =========================================================
# GOOGLE SHEETS
# =========================================================

def get_gspread_client(settings):
    # Streamlit Cloud: TOML table / JSON string (already parsed by load_settings)
    if settings.service_account_info:
        creds = Credentials.from_service_account_info(settings.service_account_info, scopes=SHEETS_SCOPES)
        return gspread.authorize(creds)

    # Local dev: JSON file path
    if settings.service_account_json_path:
        sa_info = read_service_account_file(settings.service_account_json_path)
        creds = Credentials.from_service_account_info(sa_info, scopes=SHEETS_SCOPES)
        return gspread.authorize(creds)

    raise ConfigError('Missing secrets: add "gcp_service_account" (Cloud) or "service_account_json_path" (local).')


class SheetsTiles:
    """
    Worksheet-backed tile table. Row 1 is the header; ids are assigned as
    max(id) + 1 and timestamps are written by this client.
    """

    def __init__(self, worksheet):
        self.ws = worksheet

    @classmethod
    def from_settings(cls, settings):
        settings.require("spreadsheet_id")
        client = get_gspread_client(settings)
        sh = client.open_by_key(settings.spreadsheet_id)
        return cls(sh.worksheet(settings.worksheet_name))

    def _call(self, what, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (SheetsAPIError, requests.RequestException) as e:
            raise StoreError(f"{what} failed: {e}") from e

    def ensure_headers(self):
        """
        If sheet is empty, write header row.
        If header exists but missing columns, extend it (append missing at end).
        """
        first_row = self._call("read headers", self.ws.row_values, 1)
        if not first_row:
            self._call("write headers", self.ws.append_row, TILE_COLUMNS)
            return list(TILE_COLUMNS)

        missing = [h for h in TILE_COLUMNS if h not in first_row]
        if missing:
            new_headers = first_row + missing
            self._call("write headers", self.ws.update, range_name="1:1", values=[new_headers])
            return new_headers

        return first_row

    def _records(self):
        self.ensure_headers()
        return self._call("select", self.ws.get_all_records)

    def select_all(self):
        rows = [r for r in self._records() if str(r.get("id", "")).strip() != ""]
        rows.sort(key=lambda r: str(r.get("created_at") or ""), reverse=True)
        return rows

    def _next_id(self, rows):
        ids = []
        for r in rows:
            try:
                ids.append(int(r.get("id")))
            except (TypeError, ValueError):
                continue
        return max(ids, default=0) + 1

    def _row_number(self, headers, tile_id):
        id_col = headers.index("id") + 1
        col = self._call("read ids", self.ws.col_values, id_col)
        for idx, val in enumerate(col[1:], start=2):
            if str(val).strip() == str(tile_id):
                return idx
        return None

    def insert(self, row: dict):
        headers = self.ensure_headers()
        rows = self._call("select", self.ws.get_all_records)
        now = utc_now_iso()
        stored = {**row, "id": self._next_id(rows), "created_at": now, "updated_at": now}
        ordered = ["" if stored.get(h) is None else stored.get(h) for h in headers]
        self._call("insert", self.ws.append_row, ordered, value_input_option="RAW")
        return stored

    def update(self, tile_id, patch: dict, expected_updated_at=None):
        headers = self.ensure_headers()
        rownum = self._row_number(headers, tile_id)
        if not rownum:
            raise ConflictError(f"Tile {tile_id} changed or no longer exists")

        current = self._call("read row", self.ws.row_values, rownum)
        current = current + [""] * (len(headers) - len(current))
        record = dict(zip(headers, current))

        # read-compare-write; not atomic on a worksheet
        if expected_updated_at is not None and str(record.get("updated_at", "")) != str(expected_updated_at):
            raise ConflictError(f"Tile {tile_id} changed or no longer exists")

        record.update(patch)
        record["updated_at"] = utc_now_iso()
        values = ["" if record.get(h) is None else record.get(h) for h in headers]

        last_col_letter = gspread.utils.rowcol_to_a1(1, len(headers)).rstrip("0123456789")
        rng = f"A{rownum}:{last_col_letter}{rownum}"
        self._call("update", self.ws.update, range_name=rng, values=[values], value_input_option="RAW")
        return record


def open_table(settings):
    if settings.backend == "sheets":
        table = SheetsTiles.from_settings(settings)
    else:
        table = SupabaseTiles.from_settings(settings)
    logger.info("Opened %s tile table", settings.backend)
    return table
