from dataclasses import dataclass

import pandas as pd

TILE_COLUMNS = [
    "id",
    "name",
    "size",
    "sqft_per_box",
    "total_boxes",
    "location",
    "picture_url",
    "created_at",
    "updated_at",
]


def _opt_text(x):
    if x is None or (isinstance(x, float) and pd.isna(x)):
        return None
    s = str(x).strip()
    return s or None


def _num(x, cast, default):
    try:
        if x is None or x == "":
            return default
        return cast(x)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Tile:
    id: int
    name: str
    size: str
    sqft_per_box: float
    total_boxes: int
    location: str | None = None
    picture_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def total_sqft(self) -> float:
        return self.total_boxes * self.sqft_per_box

    @classmethod
    def from_row(cls, row: dict) -> "Tile":
        return cls(
            id=int(row["id"]),
            name=str(row.get("name") or ""),
            size=str(row.get("size") or ""),
            sqft_per_box=_num(row.get("sqft_per_box"), float, 0.0),
            total_boxes=_num(row.get("total_boxes"), lambda v: int(float(v)), 0),
            location=_opt_text(row.get("location")),
            picture_url=_opt_text(row.get("picture_url")),
            created_at=_opt_text(row.get("created_at")),
            updated_at=_opt_text(row.get("updated_at")),
        )

    def label(self) -> str:
        return f"{self.name} - {self.total_boxes} boxes available"


def find_tile(tiles, tile_id):
    for t in tiles:
        if t.id == tile_id:
            return t
    return None
