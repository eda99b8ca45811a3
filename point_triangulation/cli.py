"""
Command-line interface for point triangulation.

Usage:
    triangulate-point scene.yaml [--refine] [--no-cheirality] [--rank-tol TOL]
"""

import argparse
import logging
import sys

from .exceptions import TriangulationError
from .refinement import reprojection_residual
from .scene import load_scene
from .triangulation import triangulate


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Triangulate a 3D point from its images in calibrated cameras',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
    # Linear (DLT) triangulation with the scene's parameters
    triangulate-point scene.yaml

    # Refine by minimizing reprojection error
    triangulate-point scene.yaml --refine

    # Return the point even if it lies behind a camera
    triangulate-point scene.yaml --no-cheirality -v
'''
    )

    parser.add_argument(
        'scene',
        type=str,
        help='Path to YAML scene file'
    )

    parser.add_argument(
        '--refine',
        action='store_true',
        default=None,
        help='Refine the DLT estimate by nonlinear least squares'
    )

    parser.add_argument(
        '--no-cheirality',
        action='store_true',
        help='Do not fail when the point lies behind a camera'
    )

    parser.add_argument(
        '--rank-tol',
        type=float,
        default=None,
        help='SVD rank tolerance (default: from scene, else 1e-9)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def main(argv=None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        scene = load_scene(args.scene)

        point = triangulate(
            scene.cameras,
            scene.measurements,
            rank_tol=args.rank_tol,
            refine=args.refine,
            enforce_cheirality=False if args.no_cheirality else None,
            parameters=scene.parameters,
        )

        print("\n" + "=" * 60)
        print("TRIANGULATION RESULT")
        print("=" * 60)
        print(f"Point (world):          {point[0]:.9g} {point[1]:.9g} {point[2]:.9g}")
        print(f"Measurements:           {len(scene.measurements)}")
        print(f"\nReprojection errors (pixels):")
        for i, (camera, measured) in enumerate(zip(scene.cameras, scene.measurements)):
            error = camera.reprojection_error(point, measured.as_array())
            print(f"  Measurement {i} (camera {measured.camera_index}): {error:.4f}")
        residual = reprojection_residual(scene.cameras, scene.measurements, point)
        print(f"  Sum of squares:       {residual:.6g}")
        print("=" * 60)
        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except TriangulationError as e:
        logger.error(f"Triangulation failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
