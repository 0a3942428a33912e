"""
Shapely helpers shared by the support spot search.

Polygon iteration, bounding-box clipping, brim construction and conversion of
slice outlines to boundary segments.
"""
from typing import Iterable, Iterator, List, Tuple

import numpy as np
import shapely
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.ops import unary_union

from support_spots.contracts import BrimType


def iter_polygons(geometry) -> Iterator[Polygon]:
    """Yield the non-empty polygons of a geometry or a list of geometries."""
    if geometry is None:
        return
    if isinstance(geometry, (list, tuple)):
        for item in geometry:
            yield from iter_polygons(item)
        return
    if geometry.is_empty:
        return
    if isinstance(geometry, Polygon):
        yield geometry
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        for part in geometry.geoms:
            yield from iter_polygons(part)


def union_polygons(geometries: Iterable) -> MultiPolygon:
    polygons = list(iter_polygons(list(geometries)))
    if not polygons:
        return MultiPolygon()
    merged = unary_union(polygons)
    return MultiPolygon(list(iter_polygons(merged)))


def clip_to_bbox(geometry, bounds: Tuple[float, float, float, float]):
    """Clip geometry by an axis-aligned box, cheap prefilter before booleans."""
    if geometry.is_empty:
        return geometry
    return shapely.clip_by_rect(geometry, *bounds)


def boundary_segments(geometry) -> np.ndarray:
    """All contour and hole edges of the polygons as an (N, 2, 2) array."""
    segments: List[np.ndarray] = []
    for polygon in iter_polygons(geometry):
        for ring in (polygon.exterior, *polygon.interiors):
            coords = np.asarray(ring.coords, dtype=float)
            if len(coords) < 2:
                continue
            segments.append(np.stack([coords[:-1], coords[1:]], axis=1))
    if not segments:
        return np.zeros((0, 2, 2))
    return np.concatenate(segments, axis=0)


def get_brim(slice_polygons, brim_type: BrimType, brim_width: float) -> List[Polygon]:
    """Brim area around a slice.

    Overlap of brims of neighboring slices is neglected, so the resulting
    adhesion is slightly overestimated where brims collide.
    """
    brim: List[Polygon] = []
    for polygon in iter_polygons(slice_polygons):
        contour = Polygon(polygon.exterior)
        if brim_type in (BrimType.OUTER_AND_INNER, BrimType.OUTER_ONLY):
            # for very small polygons the expansion may come out empty
            expanded = contour.buffer(brim_width, join_style="mitre")
            if not expanded.is_empty:
                brim.extend(iter_polygons(expanded.difference(contour)))
        if brim_type in (BrimType.OUTER_AND_INNER, BrimType.INNER_ONLY):
            for interior in polygon.interiors:
                hole = Polygon(interior)
                shrunk = hole.buffer(-brim_width, join_style="mitre")
                brim.extend(iter_polygons(hole.difference(shrunk)))
    return brim


def bbox_of(geometry) -> Tuple[float, float, float, float]:
    if geometry.is_empty:
        return (0.0, 0.0, 0.0, 0.0)
    return tuple(float(v) for v in geometry.bounds)


def bbox_intersects(a: Tuple[float, float, float, float], b: Tuple[float, float, float, float]) -> bool:
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])
