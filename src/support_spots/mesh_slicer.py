"""
Minimal mesh slicer for running the search from the command line.

Sections a trimesh mesh at the middle of every layer and generates simple
extrusions for each slice: an external and an inner perimeter around every
contour, rectilinear sparse infill, and bridge infill over the area that has
nothing below it.
"""
import logging
import math
from typing import List, Optional

import numpy as np
import trimesh
from shapely.geometry import LineString, MultiLineString, Polygon
from shapely.ops import unary_union

from support_spots.contracts import (
    ExtrusionCollection,
    ExtrusionPath,
    ExtrusionRole,
    Layer,
    LayerSlice,
    SlicedObject,
)
from support_spots.geometry import iter_polygons

logger = logging.getLogger(__name__)

SPARSE_INFILL_SPACING_FACTOR = 5.0  # sparse infill line spacing in extrusion widths
MIN_SLICE_AREA = 1e-3  # mm^2


def load_mesh(filepath: str) -> trimesh.Trimesh:
    """Load a mesh file as a single mesh standing on z=0."""
    scene_or_mesh = trimesh.load(filepath)
    if isinstance(scene_or_mesh, trimesh.Scene):
        mesh = scene_or_mesh.to_mesh()
    elif isinstance(scene_or_mesh, trimesh.Trimesh):
        mesh = scene_or_mesh
    else:
        raise ValueError(f"Unsupported type from trimesh.load: {type(scene_or_mesh)}")
    if not isinstance(mesh, trimesh.Trimesh) or len(mesh.faces) == 0:
        raise ValueError(f"No triangle meshes found in {filepath}")

    mesh.merge_vertices()
    mesh.fix_normals()
    mesh.apply_translation([0.0, 0.0, -mesh.bounds[0][2]])
    return mesh


def section_polygons(mesh: trimesh.Trimesh, z: float) -> List[Polygon]:
    section = mesh.section(plane_origin=[0.0, 0.0, z], plane_normal=[0.0, 0.0, 1.0])
    if section is None:
        return []
    # identity transform keeps the world xy coordinates
    planar, _ = section.to_2D(to_2D=np.eye(4), check=False)
    merged = unary_union([p for p in planar.polygons_full if p.is_valid])
    return [p for p in iter_polygons(merged) if p.area > MIN_SLICE_AREA]


def _ring_path(coords, role: ExtrusionRole, width: float, height: float) -> Optional[ExtrusionPath]:
    pts = np.asarray(coords, dtype=float)[:, :2]
    if len(pts) < 3:
        return None
    return ExtrusionPath(pts, role, width, height)


def _perimeters(polygon: Polygon, width: float, height: float) -> List[ExtrusionCollection]:
    loops: List[ExtrusionCollection] = []
    for inset, role in ((0.5 * width, ExtrusionRole.EXTERNAL_PERIMETER), (1.5 * width, ExtrusionRole.PERIMETER)):
        paths = []
        for shrunk in iter_polygons(polygon.buffer(-inset, join_style="mitre")):
            for ring in (shrunk.exterior, *shrunk.interiors):
                path = _ring_path(ring.coords, role, width, height)
                if path is not None:
                    paths.append(path)
        if paths:
            loops.append(ExtrusionCollection(paths))
    return loops


def _rectilinear(region, spacing: float, angle: float, role: ExtrusionRole, width: float, height: float) -> List[ExtrusionPath]:
    """Parallel lines across a region, clipped to it."""
    if region.is_empty:
        return []
    minx, miny, maxx, maxy = region.bounds
    cx, cy = 0.5 * (minx + maxx), 0.5 * (miny + maxy)
    reach = math.hypot(maxx - minx, maxy - miny)
    direction = np.array([math.cos(angle), math.sin(angle)])
    normal = np.array([-direction[1], direction[0]])
    offsets = np.arange(-reach / 2.0 + spacing / 2.0, reach / 2.0, spacing)
    lines = [
        LineString([
            (cx, cy) + o * normal - reach * direction,
            (cx, cy) + o * normal + reach * direction,
        ])
        for o in offsets
    ]
    if not lines:
        return []
    clipped = region.intersection(MultiLineString(lines))
    paths = []
    for geom in getattr(clipped, "geoms", [clipped]):
        if isinstance(geom, LineString) and geom.length > width:
            paths.append(ExtrusionPath(np.asarray(geom.coords)[:, :2], role, width, height))
    return paths


def _fills(polygon: Polygon, below, width: float, height: float, layer_idx: int) -> List[ExtrusionCollection]:
    infill_area = polygon.buffer(-2.0 * width, join_style="mitre")
    if infill_area.is_empty:
        return []
    fills: List[ExtrusionCollection] = []
    unsupported = infill_area.difference(below.buffer(width)) if below is not None else None
    if unsupported is not None and unsupported.area > width * width:
        bridges = _rectilinear(unsupported, width, 0.0, ExtrusionRole.BRIDGE_INFILL, width, height)
        if bridges:
            fills.append(ExtrusionCollection(bridges))
        infill_area = infill_area.difference(unsupported)
    # alternate direction every layer
    angle = math.pi / 4.0 if layer_idx % 2 == 0 else -math.pi / 4.0
    sparse = _rectilinear(
        infill_area, SPARSE_INFILL_SPACING_FACTOR * width, angle, ExtrusionRole.INTERNAL_INFILL, width, height,
    )
    if sparse:
        fills.append(ExtrusionCollection(sparse))
    return fills


def slice_mesh(
    mesh: trimesh.Trimesh,
    layer_height: float = 0.2,
    extrusion_width: float = 0.45,
    name: str = "object",
) -> SlicedObject:
    """Slice a mesh standing on z=0 into layers with simple extrusions."""
    if layer_height <= 0 or extrusion_width <= 0:
        raise ValueError(
            f"Layer height and extrusion width must be positive, got {layer_height} and {extrusion_width}"
        )
    top = float(mesh.bounds[1][2])
    layer_count = int(math.floor(top / layer_height + 1e-9))
    layers: List[Layer] = []
    previous: List[Polygon] = []

    for layer_idx in range(layer_count):
        print_z = (layer_idx + 1) * layer_height
        polygons = section_polygons(mesh, print_z - 0.5 * layer_height)
        below = unary_union(previous) if previous else None
        slices = []
        for polygon in polygons:
            overlaps = [i for i, p in enumerate(previous) if p.intersection(polygon).area > MIN_SLICE_AREA]
            slices.append(LayerSlice(
                polygons=polygon,
                overlaps_below=overlaps,
                perimeters=_perimeters(polygon, extrusion_width, layer_height),
                fills=_fills(polygon, below if layer_idx > 0 else None, extrusion_width, layer_height, layer_idx),
            ))
        layers.append(Layer(print_z=print_z, height=layer_height, slices=slices))
        previous = polygons

    # trailing empty layers carry nothing
    while layers and not layers[-1].slices:
        layers.pop()
    logger.info("Sliced %s into %d layers", name, len(layers))
    return SlicedObject(layers=layers, name=name)
