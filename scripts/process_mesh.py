#!/usr/bin/env python3
"""
Run the mesh processing pipeline on a mesh file.

Analyzes the mesh, optionally repairs, cleans up CSG fragments, decimates
and smooths it, then writes the processed mesh and a JSON report.

Usage:
    python3 scripts/process_mesh.py --input model.stl --output out.stl
    python3 scripts/process_mesh.py --input scan.stl --decimate --target 20000 --report report.json
    python3 scripts/process_mesh.py --input heightmap.stl --smooth --iterations 3 --strength 0.5

Exit codes:
    0: every stage succeeded
    1: at least one stage reported an error
    2: input could not be loaded
"""
import sys
import argparse
import json
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fixture_mesh import (
    CleanupOptions,
    ContourSmoothingOptions,
    MeshProcessingError,
    PipelineOptions,
    SmoothingOptions,
    process_mesh,
)
from fixture_mesh.mesh_io import load_mesh, save_mesh

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Analyze, repair, decimate and smooth a mesh"
    )
    parser.add_argument(
        "--input", required=True, type=str, help="Mesh file (STL/OBJ/PLY/GLB)"
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Write the processed mesh here (format from extension)",
    )
    parser.add_argument(
        "--repair", dest="repair", action="store_true", default=True,
        help="Repair when analysis finds issues (default)",
    )
    parser.add_argument(
        "--no-repair", dest="repair", action="store_false",
        help="Skip the repair stage",
    )
    parser.add_argument(
        "--cleanup", action="store_true",
        help="Remove small and thin CSG fragments",
    )
    parser.add_argument(
        "--min-volume", type=float, default=5.0,
        help="Cleanup: minimum component volume in mm^3 (default: 5.0)",
    )
    parser.add_argument(
        "--min-thickness", type=float, default=2.0,
        help="Cleanup: minimum component thickness in mm (default: 2.0)",
    )
    parser.add_argument(
        "--decimate", action="store_true",
        help="Reduce the triangle count",
    )
    parser.add_argument(
        "--target", type=int, default=50_000,
        help="Decimation target triangle count (default: 50000)",
    )
    smoothing = parser.add_mutually_exclusive_group()
    smoothing.add_argument(
        "--smooth", action="store_true",
        help="Blended Taubin/Laplacian smoothing",
    )
    smoothing.add_argument(
        "--contour-smooth", action="store_true",
        help="Chaikin smoothing of stair-stepped walls",
    )
    parser.add_argument(
        "--iterations", type=int, default=None,
        help="Smoothing iterations (default: 1, or 3 for --contour-smooth)",
    )
    parser.add_argument(
        "--strength", type=float, default=0.0,
        help="0 = Taubin, 1 = Laplacian, in between blends (default: 0)",
    )
    parser.add_argument(
        "--quality", action="store_true",
        help="Use cotangent neighbour weights",
    )
    parser.add_argument(
        "--full-3d", action="store_true",
        help="Smooth in all axes instead of heightmap-aware mode",
    )
    parser.add_argument(
        "--report", type=str, default=None,
        help="Write a JSON report here",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="DEBUG logging",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> PipelineOptions:
    options = PipelineOptions(
        auto_repair=args.repair,
        decimate=args.decimate,
        target_triangles=args.target,
    )
    if args.cleanup:
        options.cleanup = CleanupOptions(
            min_volume=args.min_volume,
            min_thickness=args.min_thickness,
        )
    if args.smooth:
        options.smoothing = SmoothingOptions(
            iterations=1 if args.iterations is None else args.iterations,
            strength=args.strength,
            quality=args.quality,
            heightmap_aware=not args.full_3d,
        )
    elif args.contour_smooth:
        options.contour_smoothing = ContourSmoothingOptions(
            iterations=3 if args.iterations is None else args.iterations,
        )
    return options


def print_progress(stage: str, percent: float, message: str) -> None:
    print(f"[{stage:>10}] {percent:5.1f}%  {message}")


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        mesh = load_mesh(args.input)
    except (MeshProcessingError, OSError, ValueError) as e:
        logger.error("Could not load %s: %s", args.input, e)
        return 2

    result = process_mesh(mesh, options_from_args(args), on_progress=print_progress)

    for issue in result.analysis.issues:
        print(f"  issue: {issue}")
    print(
        f"Triangles: {mesh.triangle_count:,} -> {result.final_geometry.triangle_count:,}"
    )

    if args.output:
        save_mesh(result.final_geometry, args.output)
        print(f"Mesh written to: {args.output}")

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"Report written to: {report_path}")

    if result.errors:
        for error in result.errors:
            print(f"  error: {error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
