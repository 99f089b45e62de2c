from __future__ import annotations

"""Scene catalog table: one row per scene of a collection."""

from datetime import date, datetime, timedelta
from typing import Iterable

import pandas as pd

from verdeindex.ingestion.scenes import Scene, SceneCollection, parse_date

COLUMNS = [
    "number",
    "image_id",
    "cloud_cover",
    "date_acquired",
    "scene_center_time_utc",
    "scene_center_time_utc8",
    "year",
    "month",
    "path",
    "row",
]

UTC8_OFFSET = timedelta(hours=8)


def shift_time(time_utc: str, offset: timedelta = UTC8_OFFSET) -> str:
    """
    Shift a ``HH:MM:SS[.fff][Z]`` clock time by ``offset``, wrapping at
    midnight; fractional seconds are truncated.
    """
    hours, minutes, seconds = str(time_utc).rstrip("Zz").split(":")
    base = datetime(2000, 1, 1, int(hours), int(minutes), int(float(seconds)))
    return (base + offset).strftime("%H:%M:%S")


def _row(number: int, scene: Scene) -> dict:
    return {
        "number": number,
        "image_id": scene.scene_id,
        "cloud_cover": f"{scene.cloud_cover:.2f}%",
        "date_acquired": scene.acquired.isoformat(),
        "scene_center_time_utc": scene.time_utc,
        "scene_center_time_utc8": shift_time(scene.time_utc),
        "year": scene.acquired.year,
        "month": f"{scene.acquired.month:02d}",
        "path": scene.path,
        "row": scene.row,
    }


def scene_metadata_table(scenes: SceneCollection | Iterable[Scene]) -> pd.DataFrame:
    """Return the catalog DataFrame sorted by acquisition date then scene id."""
    ordered = sorted(scenes, key=lambda s: (s.acquired, s.scene_id))
    return pd.DataFrame(
        [_row(i, scene) for i, scene in enumerate(ordered, start=1)], columns=COLUMNS
    )


def metadata_filename(
    area: str, start, end, cloud_min: float = 0, cloud_max: float = 100
) -> str:
    """``<area>_<YYYYMMDD>_<YYYYMMDD>_cloud_<min>_<max>_metadata.csv``."""
    start_d: date = parse_date(start)
    end_d: date = parse_date(end)
    return (
        f"{area}_{start_d:%Y%m%d}_{end_d:%Y%m%d}_"
        f"cloud_{cloud_min:g}_{cloud_max:g}_metadata.csv"
    )


def format_metadata_table(df: pd.DataFrame) -> str:
    """Render the catalog as a fixed-width text table."""
    cells = [list(df.columns)] + [[str(v) for v in row] for row in df.itertuples(index=False)]
    widths = [max(len(str(r[i])) for r in cells) for i in range(len(df.columns))]

    def _line(values) -> str:
        return "| " + " | ".join(str(v).ljust(w) for v, w in zip(values, widths)) + " |"

    total = sum(widths) + 3 * len(widths) + 1
    lines = ["=" * total, _line(cells[0]), "-" * total]
    lines.extend(_line(r) for r in cells[1:])
    lines.append("=" * total)
    return "\n".join(lines)
