"""Support spot search for layer-sliced FFF prints."""

from support_spots.contracts import (
    AnalysisCancelled,
    BrimType,
    CurledLine,
    ExtrusionCollection,
    ExtrusionPath,
    ExtrusionRole,
    Layer,
    LayerSlice,
    PartialObject,
    SlicedObject,
    SupportPoint,
    SupportPointCause,
)
from support_spots.generator import analyze, full_search
from support_spots.issues import format_alert, gather_issues, issue_to_alert_message
from support_spots.malformations import estimate_malformations
from support_spots.params import Params

__all__ = [
    "AnalysisCancelled",
    "BrimType",
    "CurledLine",
    "ExtrusionCollection",
    "ExtrusionPath",
    "ExtrusionRole",
    "Layer",
    "LayerSlice",
    "PartialObject",
    "Params",
    "SlicedObject",
    "SupportPoint",
    "SupportPointCause",
    "analyze",
    "estimate_malformations",
    "format_alert",
    "full_search",
    "gather_issues",
    "issue_to_alert_message",
]
