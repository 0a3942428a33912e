"""
Summary of detected print stability issues for the user.

Support points and partial objects of a finished search are reduced to a
short list of (cause, critical) issues, and those to an alert message.
"""
import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np
from scipy.spatial import KDTree

from support_spots.contracts import PartialObject, SupportPoint, SupportPointCause

logger = logging.getLogger(__name__)

Issue = Tuple[SupportPointCause, bool]

CLUSTER_RADIUS = 3.0  # mm
CLUSTER_SCORE_LIMIT = 5
ANCHOR_SCORE = 3
VOLUME_SIGNIFICANCE_RATIO = 1.0 / 200.0

_ALERT_MESSAGES: Dict[SupportPointCause, str] = {
    SupportPointCause.LONG_BRIDGE: "Long bridging extrusions",
    SupportPointCause.FLOATING_BRIDGE_ANCHOR: "Floating bridge anchors",
    SupportPointCause.SEPARATION_FROM_BED: "Low bed adhesion",
    SupportPointCause.UNSTABLE_FLOATING_PART: "Floating object part",
    SupportPointCause.WEAK_OBJECT_PART: "Thin fragile part",
}


def _has_cause(points: Sequence[SupportPoint], cause: SupportPointCause) -> bool:
    return any(p.cause == cause for p in points)


def gather_issues(
    support_points: Sequence[SupportPoint],
    partial_objects: Sequence[PartialObject],
) -> List[Issue]:
    """Issues worth reporting, in the order they should be shown."""
    result: List[Issue] = []
    by_volume = sorted(partial_objects, key=lambda p: p.volume, reverse=True)
    # an object with no extrusions has no partial objects
    max_volume_part = by_volume[0].volume if by_volume else 0.0
    significant_volume = max_volume_part * VOLUME_SIGNIFICANCE_RATIO

    if any(p.volume > significant_volume and not p.connected_to_bed for p in by_volume):
        result.append((SupportPointCause.UNSTABLE_FLOATING_PART, True))

    ext_points = [
        p for p in support_points
        if p.cause in (SupportPointCause.FLOATING_BRIDGE_ANCHOR, SupportPointCause.FLOATING_EXTRUSION)
    ]
    if ext_points:
        tree = KDTree(np.array([p.position for p in ext_points], dtype=float))
        for point in ext_points:
            cluster = tree.query_ball_point(point.position, CLUSTER_RADIUS)
            causes = [ext_points[idx].cause for idx in cluster]
            score = sum(
                ANCHOR_SCORE if c == SupportPointCause.FLOATING_BRIDGE_ANCHOR else 1 for c in causes
            )
            if score > CLUSTER_SCORE_LIMIT:
                if SupportPointCause.FLOATING_BRIDGE_ANCHOR in causes:
                    result.append((SupportPointCause.FLOATING_BRIDGE_ANCHOR, True))
                else:
                    result.append((SupportPointCause.FLOATING_EXTRUSION, True))
                break

    if _has_cause(support_points, SupportPointCause.SEPARATION_FROM_BED):
        result.append((SupportPointCause.SEPARATION_FROM_BED, True))
    if _has_cause(support_points, SupportPointCause.WEAK_OBJECT_PART):
        result.append((SupportPointCause.WEAK_OBJECT_PART, True))

    if len(ext_points) > significant_volume:
        result.append((SupportPointCause.FLOATING_EXTRUSION, False))

    if _has_cause(support_points, SupportPointCause.LONG_BRIDGE):
        result.append((SupportPointCause.LONG_BRIDGE, False))

    logger.debug("Gathered %d issues from %d points", len(result), len(support_points))
    return result


def issue_to_alert_message(cause: SupportPointCause, critical: bool) -> str:
    if cause == SupportPointCause.FLOATING_EXTRUSION:
        return "Collapsing overhang" if critical else "Loose extrusions"
    return _ALERT_MESSAGES[cause]


def format_alert(objects_issues: Sequence[Tuple[str, Sequence[Issue], bool]]) -> str:
    """Alert text for a set of objects.

    objects_issues holds (object name, issues, object has brim) per object.
    Returns an empty string when no object has issues. Listing is grouped by
    issue when there are more objects than distinct issues, else by object.
    """
    objects_issues = [entry for entry in objects_issues if entry[1]]
    if not objects_issues:
        return ""

    recommend_brim = False
    objects_by_issue: Dict[Issue, List[str]] = {}
    for name, issues, has_brim in objects_issues:
        for issue in issues:
            objects_by_issue.setdefault(issue, []).append(name)
            if issue[0] == SupportPointCause.SEPARATION_FROM_BED and not has_brim:
                recommend_brim = True

    elements: List[Tuple[str, List[str]]] = []
    if len(objects_issues) > len(objects_by_issue):
        for issue, names in objects_by_issue.items():
            elements.append((issue_to_alert_message(*issue), names))
    else:
        for name, issues, _ in objects_issues:
            elements.append((name, [issue_to_alert_message(*issue) for issue in issues]))

    lines: List[str] = []
    for title, items in elements:
        lines.extend(["", title, ", ".join(items)])
    lines.extend(["", "Consider enabling supports."])
    if recommend_brim:
        lines.append("Also consider enabling brim.")
    return "Detected print stability issues:\n" + "\n".join(lines)
