"""Tests for the scene metadata catalog."""

# pylint: disable=W0621,W0613

from datetime import date

import pytest

from verdeindex.ingestion.scenes import SceneCollection
from verdeindex.services.metadata import (
    COLUMNS,
    format_metadata_table,
    metadata_filename,
    scene_metadata_table,
    shift_time,
)


@pytest.mark.parametrize(
    "utc,expected",
    [
        ("02:55:31.1234560Z", "10:55:31"),
        ("20:10:05", "04:10:05"),
        ("16:00:00Z", "00:00:00"),
    ],
)
def test_shift_time_to_utc8(utc, expected):
    assert shift_time(utc) == expected


def test_metadata_table(make_scene):
    scenes = SceneCollection(
        (
            make_scene("LC08_B", acquired="2020-03-21", cloud_cover=3, row=33),
            make_scene(
                "LC08_A", acquired="2020-03-05", cloud_cover=12.5, time_utc="20:10:05Z"
            ),
        )
    )
    df = scene_metadata_table(scenes)
    assert list(df.columns) == COLUMNS
    assert df["number"].tolist() == [1, 2]
    first = df.iloc[0]
    assert first["image_id"] == "LC08_A"
    assert first["cloud_cover"] == "12.50%"
    assert first["date_acquired"] == "2020-03-05"
    assert first["scene_center_time_utc"] == "20:10:05Z"
    assert first["scene_center_time_utc8"] == "04:10:05"
    assert first["year"] == 2020
    assert first["month"] == "03"
    assert (first["path"], first["row"]) == (123, 32)
    assert df.iloc[1]["row"] == 33


def test_metadata_filename():
    name = metadata_filename("beijing", "2020-01-01", date(2021, 1, 1), 0, 20.5)
    assert name == "beijing_20200101_20210101_cloud_0_20.5_metadata.csv"


def test_format_metadata_table(make_scene):
    df = scene_metadata_table([make_scene("LC08_A")])
    text = format_metadata_table(df)
    lines = text.splitlines()
    assert lines[0].startswith("=")
    assert "image_id" in lines[1] and "scene_center_time_utc8" in lines[1]
    assert "LC08_A" in lines[3]
    assert len({len(line) for line in lines}) == 1
