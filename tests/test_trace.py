"""Tests for trace module."""
import json

from support_spots.contracts import PartialObject, SupportPoint, SupportPointCause
from support_spots.generator import analyze
from support_spots.trace import ObjTraceSink, points_to_obj, slugify


def test_slugify():
    assert slugify("My Part (v2)") == "my-part-v2"
    assert slugify("--Bracket__left--") == "bracket-left"
    assert slugify("  ") == "object"


def test_points_to_obj_colors():
    text = points_to_obj(
        [SupportPoint(SupportPointCause.SEPARATION_FROM_BED, (1.0, 2.0, 0.2), 1.5)],
        [PartialObject((0.0, 0.0, 1.0), 10.0, False)],
    )
    lines = text.splitlines()
    assert lines[0] == "v 1.000000 2.000000 0.200000  0.000000 1.000000 0.000000"
    assert lines[1].endswith("1.000000 0.000000 1.000000")


def test_obj_trace_sink_writes_files(tmp_path, floating_object):
    sink = ObjTraceSink(tmp_path / "out", floating_object.name)
    points, partial_objects = analyze(floating_object, trace=sink, max_workers=1)

    assert sink.obj_path.exists()
    assert len(sink.obj_path.read_text().splitlines()) == len(points) + len(partial_objects)

    summary = json.loads(sink.summary_path.read_text())
    assert summary["name"] == "floating"
    assert len(summary["support_points"]) == len(points)
    assert sum(summary["points_by_cause"].values()) == len(points)
    assert sum(summary["points_per_layer"].values()) == len(points)
    assert {o["connected_to_bed"] for o in summary["partial_objects"]} == {True, False}


def test_summary_is_newline_terminated(tmp_path):
    sink = ObjTraceSink(tmp_path, "Empty Object")
    sink.finished([], [])
    assert sink.summary_path.name == "empty-object_summary.json"
    text = sink.summary_path.read_text()
    assert text.endswith("}\n")
    assert json.loads(text)["points_by_cause"] == {}
    assert sink.obj_path.read_text() == ""
