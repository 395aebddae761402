import hmac
import logging
import math
import re

import pandas as pd

from tile_tracker.models import Tile

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"
NOT_SET = "Not set"
NO_IMAGE = "No Image"

VIEW_COLUMNS = ["Name", "Size", "Sq Ft / Box", "Boxes", "Total Sq Ft", "Location", "Picture URL"]


class ValidationError(ValueError):
    def __init__(self, errors):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


# =========================================================
# SESSION GATE
# =========================================================

def authenticate(password, secret) -> bool:
    """Exact match against the configured secret. An unset secret never matches."""
    if not secret or password is None:
        return False
    return hmac.compare_digest(str(password).encode("utf-8"), str(secret).encode("utf-8"))


# =========================================================
# INPUT PARSING
# =========================================================

def is_blank(x) -> bool:
    return x is None or str(x).strip() == ""


def _parse_int(raw, label, errors, minimum):
    # digits only; a trailing ".0" is allowed so "5.0" reads as 5
    m = re.fullmatch(r"([+-]?\d+)(?:\.0*)?", str(raw).strip())
    if m is None:
        errors.append(f"{label} must be a whole number.")
        return None
    n = int(m.group(1))
    if n < minimum:
        errors.append(f"{label} must be at least {minimum}.")
        return None
    return n


def can_submit_add(name, size, sqft_per_box, total_boxes) -> bool:
    return not any(is_blank(v) for v in (name, size, sqft_per_box, total_boxes))


def validate_new_tile(name, size, sqft_per_box, total_boxes, location="", picture_url="") -> dict:
    """Return the insert row for the Add form, or raise ValidationError."""
    errors = []
    if is_blank(name):
        errors.append("Tile name is required.")
    if is_blank(size):
        errors.append("Size is required.")

    sqft = None
    if is_blank(sqft_per_box):
        errors.append("Sq ft per box is required.")
    else:
        try:
            sqft = float(str(sqft_per_box).strip())
        except ValueError:
            errors.append("Sq ft per box must be a number.")
        else:
            if not (math.isfinite(sqft) and sqft > 0):
                errors.append("Sq ft per box must be greater than 0.")
                sqft = None

    boxes = None
    if is_blank(total_boxes):
        errors.append("Number of boxes is required.")
    else:
        boxes = _parse_int(total_boxes, "Number of boxes", errors, minimum=0)

    if errors:
        raise ValidationError(errors)

    return {
        "name": str(name).strip(),
        "size": str(size).strip(),
        "sqft_per_box": sqft,
        "total_boxes": boxes,
        "location": None if is_blank(location) else str(location).strip(),
        "picture_url": None if is_blank(picture_url) else str(picture_url).strip(),
    }


# =========================================================
# MUTATION RULES
# =========================================================

def remaining_boxes(current: int, to_remove: int) -> int:
    """Boxes left after a removal; clamps at zero, the row is never deleted."""
    return max(int(current) - int(to_remove), 0)


def parse_removal_count(raw) -> int:
    errors = []
    n = None
    if is_blank(raw):
        errors.append("Number of boxes to remove is required.")
    else:
        n = _parse_int(raw, "Boxes to remove", errors, minimum=1)
    if errors:
        raise ValidationError(errors)
    return n


def build_update_patch(total_boxes=None, location=None, picture_url=None) -> dict:
    """
    Sparse patch for the Update form. Blank inputs mean "no change" and are
    left out; they never clear the stored value.
    """
    patch = {}
    errors = []
    if not is_blank(total_boxes):
        n = _parse_int(total_boxes, "Box count", errors, minimum=0)
        if n is not None:
            patch["total_boxes"] = n
    if not is_blank(location):
        patch["location"] = str(location).strip()
    if not is_blank(picture_url):
        patch["picture_url"] = str(picture_url).strip()
    if errors:
        raise ValidationError(errors)
    return patch


# =========================================================
# REMOTE OPERATIONS
# =========================================================

def load_tiles(table):
    rows = table.select_all()
    tiles = [Tile.from_row(r) for r in rows]
    logger.debug("Loaded %d tiles", len(tiles))
    return tiles


def add_tile(table, row: dict):
    stored = table.insert(row)
    logger.info("Added tile %r (%s boxes)", row.get("name"), row.get("total_boxes"))
    return stored


def remove_boxes(table, tile: Tile, to_remove: int):
    new_count = remaining_boxes(tile.total_boxes, to_remove)
    stored = table.update(tile.id, {"total_boxes": new_count}, expected_updated_at=tile.updated_at)
    logger.info("Removed %s boxes from tile %s: %s -> %s", to_remove, tile.id, tile.total_boxes, new_count)
    return stored


def update_tile(table, tile: Tile, patch: dict):
    if not patch:
        return None
    stored = table.update(tile.id, patch, expected_updated_at=tile.updated_at)
    logger.info("Updated tile %s fields %s", tile.id, sorted(patch))
    return stored


# =========================================================
# DISPLAY
# =========================================================

def format_sqft(value, decimals: int = 2) -> str:
    return f"{float(value):.{decimals}f}"


def inventory_stats(tiles) -> dict:
    return {
        "tile_types": len(tiles),
        "total_boxes": sum(t.total_boxes for t in tiles),
        "total_sqft": sum(t.total_sqft for t in tiles),
    }


def tiles_frame(tiles) -> pd.DataFrame:
    """Display table for the View screen, in cache order."""
    if not tiles:
        return pd.DataFrame(columns=VIEW_COLUMNS)

    df = pd.DataFrame(
        [
            {
                "Name": t.name,
                "Size": t.size,
                "Sq Ft / Box": t.sqft_per_box,
                "Boxes": t.total_boxes,
                "Total Sq Ft": round(t.total_sqft, 2),
                "Location": t.location or NOT_SPECIFIED,
                "Picture URL": t.picture_url or "",
            }
            for t in tiles
        ]
    )
    return df[VIEW_COLUMNS]


def sqft_by_tile(tiles) -> pd.DataFrame:
    df = pd.DataFrame(
        [{"tile": f"{t.name} ({t.size})", "total_sqft": round(t.total_sqft, 2)} for t in tiles],
        columns=["tile", "total_sqft"],
    )
    return df.sort_values("total_sqft", ascending=False)
