#!/usr/bin/env python3
"""
Find where a print needs support.

Slices a mesh into layers with simple perimeters and infill, runs the support
spot search and prints the detected stability issues.

Usage:
    python scripts/find_support_spots.py --input model.stl
    python scripts/find_support_spots.py --input model.stl --filament PETG --brim-width 5
    python scripts/find_support_spots.py --input model.obj --layer-height 0.3 --output out/ -v
"""
import sys
import os
import argparse
import logging
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from support_spots import Params, analyze, format_alert, gather_issues
from support_spots.contracts import BrimType
from support_spots.mesh_slicer import load_mesh, slice_mesh
from support_spots.trace import ObjTraceSink


def main():
    parser = argparse.ArgumentParser(
        description="Find support spots of a mesh printed with FFF.",
    )
    parser.add_argument(
        "--input", required=True,
        help="Path to input mesh file (STL, OBJ, GLB, PLY)",
    )
    parser.add_argument(
        "--output", default=None,
        help="Output directory (default: <input_dir>/<input_stem>_support_spots/)",
    )
    parser.add_argument(
        "--layer-height", type=float, default=0.2,
        help="Layer height in mm (default: 0.2)",
    )
    parser.add_argument(
        "--extrusion-width", type=float, default=0.45,
        help="Extrusion width in mm (default: 0.45)",
    )
    parser.add_argument(
        "--filament", default="PLA",
        help="Filament type, decides bed adhesion (default: PLA)",
    )
    parser.add_argument(
        "--brim-width", type=float, default=0.0,
        help="Outer brim width in mm, 0 for no brim (default: 0)",
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Worker threads (default: Python's ThreadPoolExecutor default)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Resolve paths
    input_path = os.path.abspath(args.input)
    if not os.path.isfile(input_path):
        parser.error(f"Input file not found: {input_path}")

    if args.output:
        output_dir = os.path.abspath(args.output)
    else:
        stem = Path(input_path).stem
        output_dir = os.path.join(os.path.dirname(input_path), f"{stem}_support_spots")
    os.makedirs(output_dir, exist_ok=True)

    brim_type = BrimType.OUTER_ONLY if args.brim_width > 0 else BrimType.NO_BRIM
    params = Params.from_filament_types(
        [args.filament], brim_type=brim_type, brim_width=args.brim_width,
    )

    name = Path(input_path).stem
    print(f"Slicing {input_path} ...")
    mesh = load_mesh(input_path)
    sliced = slice_mesh(mesh, args.layer_height, args.extrusion_width, name=name)

    trace = ObjTraceSink(output_dir, name)
    points, partial_objects = analyze(sliced, params, trace=trace, max_workers=args.workers)

    # Summary
    print(f"\nResult: {len(points)} support points, {len(partial_objects)} partial objects")
    issues = gather_issues(points, partial_objects)
    alert = format_alert([(name, issues, params.has_brim)])
    print(alert or "No print stability issues detected.")
    print(f"\nSupport points saved to {trace.obj_path}")
    print("\nDone.")


if __name__ == "__main__":
    main()
