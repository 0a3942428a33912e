"""Optional export of search results for inspection."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Sequence

from support_spots.contracts import PartialObject, SupportPoint, SupportPointCause

logger = logging.getLogger(__name__)

CAUSE_COLORS = {
    SupportPointCause.FLOATING_BRIDGE_ANCHOR: (0.863281, 0.109375, 0.113281),  # red
    SupportPointCause.LONG_BRIDGE: (0.960938, 0.90625, 0.0625),  # yellow
    SupportPointCause.FLOATING_EXTRUSION: (0.921875, 0.515625, 0.101563),  # orange
    SupportPointCause.SEPARATION_FROM_BED: (0.0, 1.0, 0.0),  # green
    SupportPointCause.UNSTABLE_FLOATING_PART: (0.105469, 0.699219, 0.84375),  # blue
    SupportPointCause.WEAK_OBJECT_PART: (0.609375, 0.210938, 0.621094),  # purple
}
BED_CONNECTED_COLOR = (1.0, 0.0, 0.0)
FLOATING_COLOR = (1.0, 0.0, 1.0)


def slugify(value: str) -> str:
    """Object name as a file name stem: lowercase words joined by dashes."""
    return "-".join(re.findall(r"[a-z0-9]+", value.lower())) or "object"


def _write_export(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _obj_vertex(position, color) -> str:
    return "v {:f} {:f} {:f}  {:f} {:f} {:f}\n".format(*position, *color)


def points_to_obj(support_points: Sequence[SupportPoint], partial_objects: Sequence[PartialObject]) -> str:
    """Colored OBJ point cloud: support points by cause, then partial object centroids."""
    lines: List[str] = [_obj_vertex(p.position, CAUSE_COLORS[p.cause]) for p in support_points]
    for obj in partial_objects:
        color = BED_CONNECTED_COLOR if obj.connected_to_bed else FLOATING_COLOR
        lines.append(_obj_vertex(obj.centroid, color))
    return "".join(lines)


class TraceSink:
    """Receives progress of a running search. The default does nothing."""

    def layer_done(self, layer_idx: int, points: Sequence[SupportPoint]) -> None:
        pass

    def finished(self, points: Sequence[SupportPoint], partial_objects: Sequence[PartialObject]) -> None:
        pass


class ObjTraceSink(TraceSink):
    """Writes <name>_supports.obj and <name>_summary.json into out_dir."""

    def __init__(self, out_dir, name: str = "issues") -> None:
        self.out_dir = Path(out_dir)
        self.name = slugify(name)
        self.points_per_layer: Dict[int, int] = {}

    @property
    def obj_path(self) -> Path:
        return self.out_dir / f"{self.name}_supports.obj"

    @property
    def summary_path(self) -> Path:
        return self.out_dir / f"{self.name}_summary.json"

    def layer_done(self, layer_idx: int, points: Sequence[SupportPoint]) -> None:
        if points:
            self.points_per_layer[layer_idx] = len(points)

    def finished(self, points: Sequence[SupportPoint], partial_objects: Sequence[PartialObject]) -> None:
        _write_export(self.obj_path, points_to_obj(points, partial_objects))
        causes: Dict[str, int] = {}
        for point in points:
            causes[point.cause.value] = causes.get(point.cause.value, 0) + 1
        summary = {
            "name": self.name,
            "support_points": [p.to_dict() for p in points],
            "partial_objects": [o.to_dict() for o in partial_objects],
            "points_by_cause": causes,
            "points_per_layer": {str(k): v for k, v in sorted(self.points_per_layer.items())},
        }
        _write_export(self.summary_path, json.dumps(summary, indent=2) + "\n")
        logger.info("Wrote %s and %s", self.obj_path, self.summary_path)
