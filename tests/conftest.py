import re

import pytest

from tile_tracker.models import TILE_COLUMNS, Tile
from tile_tracker.store import ConflictError


class FakeTable:
    """In-memory stand-in for a remote tile table."""

    def __init__(self, rows=None):
        self.rows = []
        self.clock = 0
        self.updates = []
        for r in rows or []:
            self.insert(r)

    def _tick(self):
        self.clock += 1
        return f"2024-01-01T00:00:{self.clock:02d}+00:00"

    def select_all(self):
        return sorted((dict(r) for r in self.rows), key=lambda r: r["created_at"], reverse=True)

    def insert(self, row):
        now = self._tick()
        stored = {**row, "id": len(self.rows) + 1, "created_at": now, "updated_at": now}
        self.rows.append(stored)
        return dict(stored)

    def update(self, tile_id, patch, expected_updated_at=None):
        self.updates.append((tile_id, dict(patch), expected_updated_at))
        for r in self.rows:
            if r["id"] != tile_id:
                continue
            if expected_updated_at is not None and r["updated_at"] != expected_updated_at:
                break
            r.update(patch)
            r["updated_at"] = self._tick()
            return dict(r)
        raise ConflictError(f"Tile {tile_id} changed or no longer exists")

    def get(self, tile_id):
        return Tile.from_row(next(r for r in self.rows if r["id"] == tile_id))


class FakeWorksheet:
    """Just enough of gspread.Worksheet for SheetsTiles."""

    def __init__(self, rows=None):
        self.rows = [list(r) for r in rows or []]
        self.writes = []

    def row_values(self, n):
        if n > len(self.rows):
            return []
        return [str(v) for v in self.rows[n - 1]]

    def col_values(self, n):
        return [str(r[n - 1]) if len(r) >= n else "" for r in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def update(self, range_name=None, values=None, value_input_option=None):
        self.writes.append(range_name)
        if range_name == "1:1":
            self.rows[0] = list(values[0])
            return
        rownum = int(re.match(r"A(\d+):", range_name).group(1))
        self.rows[rownum - 1] = list(values[0])

    def get_all_records(self):
        if not self.rows:
            return []
        header = self.rows[0]
        out = []
        for r in self.rows[1:]:
            r = list(r) + [""] * (len(header) - len(r))
            out.append(dict(zip(header, r)))
        return out


@pytest.fixture
def table():
    return FakeTable(
        [
            {"name": "Marble A", "size": "12x12", "sqft_per_box": 2.0, "total_boxes": 3, "location": "Aisle 1", "picture_url": None},
            {"name": "Slate B", "size": "24x24", "sqft_per_box": 2.5, "total_boxes": 10, "location": None, "picture_url": "https://example.com/b.jpg"},
        ]
    )


@pytest.fixture
def worksheet():
    return FakeWorksheet(
        [
            TILE_COLUMNS,
            [1, "Marble A", "12x12", 2.0, 3, "Aisle 1", "", "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00+00:00"],
            [2, "Slate B", "24x24", 2.5, 10, "", "", "2024-02-01T00:00:00+00:00", "2024-02-01T00:00:00+00:00"],
        ]
    )


@pytest.fixture
def empty_worksheet():
    return FakeWorksheet()


@pytest.fixture
def make_table():
    return FakeTable
