import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

import streamlit as st

logger = logging.getLogger(__name__)

# =========================================================
# SETTINGS
# =========================================================

BACKENDS = ("supabase", "sheets")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s:%(lineno)d - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ConfigError(KeyError):
    def __str__(self):
        # KeyError reprs its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


@dataclass(frozen=True)
class Settings:
    admin_password: str | None = None
    backend: str = "supabase"
    supabase_url: str | None = None
    supabase_key: str | None = None
    table_name: str = "tiles"
    spreadsheet_id: str | None = None
    worksheet_name: str = "tiles"
    service_account_info: dict | None = None
    service_account_json_path: str | None = None
    log_level: str = "INFO"

    def require(self, *names):
        missing = [n for n in names if not getattr(self, n)]
        if missing:
            raise ConfigError("Missing settings: " + ", ".join(missing))


def _secrets_mapping() -> dict:
    """
    st.secrets raises when no secrets.toml exists; the environment is enough
    for local runs, so an absent secrets file just means "no overrides".
    """
    try:
        return {k: st.secrets[k] for k in st.secrets.keys()}
    except FileNotFoundError:
        logger.debug("No Streamlit secrets file found; using environment only")
        return {}


def _blank_to_none(v):
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _service_account(raw):
    # Streamlit Cloud: TOML table or JSON string
    if raw is None:
        return None
    if isinstance(raw, str):
        return json.loads(raw)
    return {k: raw[k] for k in raw.keys()}


def load_settings(source=None) -> Settings:
    """
    Build Settings from a mapping. Defaults to st.secrets layered over the
    process environment (secrets win).
    """
    if source is None:
        source = {**os.environ, **_secrets_mapping()}

    backend = (_blank_to_none(source.get("TILE_BACKEND")) or "supabase").lower()
    if backend not in BACKENDS:
        raise ConfigError(f"TILE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")

    return Settings(
        admin_password=source.get("ADMIN_PASSWORD") or None,
        backend=backend,
        supabase_url=_blank_to_none(source.get("SUPABASE_URL")),
        supabase_key=_blank_to_none(source.get("SUPABASE_ANON_KEY")),
        table_name=_blank_to_none(source.get("TILES_TABLE")) or "tiles",
        spreadsheet_id=_blank_to_none(source.get("SPREADSHEET_ID")),
        worksheet_name=_blank_to_none(source.get("TILES_WORKSHEET")) or "tiles",
        service_account_info=_service_account(source.get("gcp_service_account")),
        service_account_json_path=_blank_to_none(source.get("service_account_json_path")),
        log_level=(_blank_to_none(source.get("LOG_LEVEL")) or "INFO").upper(),
    )


def read_service_account_file(path_str: str) -> dict:
    p = Path(path_str)
    if not p.is_absolute():
        # resolve relative to project root (current working directory)
        p = Path.cwd() / p
    if not p.exists():
        raise FileNotFoundError(f"Service account JSON not found at: {p}")
    return json.loads(p.read_text(encoding="utf-8"))


# =========================================================
# LOGGING
# =========================================================

def configure_logging(level: str = "INFO"):
    """Attach one stream handler to the package logger; safe to call on every rerun."""
    pkg_logger = logging.getLogger("tile_tracker")
    pkg_logger.setLevel(level)
    if not any(getattr(h, "_tile_tracker", False) for h in pkg_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        handler._tile_tracker = True
        pkg_logger.addHandler(handler)
    pkg_logger.propagate = False
    return pkg_logger
