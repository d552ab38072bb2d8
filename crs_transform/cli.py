#!/usr/bin/env python3
"""
Coordinate transform CLI
Transform a point or a bounding box between two CRSs from the command line
"""
import argparse
import json
import sys

from .config import get_settings
from .coordinate_transform import CoordinateTransform
from .exceptions import CoordinateTransformError
from .logging_config import setup_logging
from .models.coordinates import Point, Rectangle, TransformDirection


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crs-transform",
        description="Transform coordinates between two coordinate reference systems"
    )
    parser.add_argument('--source', default='EPSG:4326',
                        help='Source CRS: authority id, EPSG code, PROJ string or WKT (default: EPSG:4326)')
    parser.add_argument('--dest', required=True,
                        help='Destination CRS: authority id, EPSG code, PROJ string or WKT')
    parser.add_argument('--reverse', action='store_true',
                        help='Transform from destination to source')
    parser.add_argument('--json', action='store_true', dest='as_json',
                        help='Print the result as JSON')
    parser.add_argument('--log-level', default=None,
                        help='Log level (default: LOG_LEVEL setting)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    point = subparsers.add_parser('point', help='Transform a single coordinate')
    point.add_argument('x', type=float)
    point.add_argument('y', type=float)
    point.add_argument('z', type=float, nargs='?', default=None)

    bbox = subparsers.add_parser('bbox', help='Transform a bounding box')
    bbox.add_argument('x_min', type=float)
    bbox.add_argument('y_min', type=float)
    bbox.add_argument('x_max', type=float)
    bbox.add_argument('y_max', type=float)
    bbox.add_argument('--samples', type=int, default=None,
                      help='Points sampled per edge (default: BBOX_EDGE_SAMPLES setting)')
    return parser


def main(argv=None) -> int:
    """Main CLI function"""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.LOG_LEVEL,
                  use_json=settings.LOG_FORMAT == "json",
                  service_name=settings.SERVICE_NAME,
                  stream=sys.stderr)

    direction = TransformDirection.REVERSE if args.reverse else TransformDirection.FORWARD

    try:
        transform = CoordinateTransform(_crs_arg(args.source), _crs_arg(args.dest), settings=settings)
        if args.command == 'point':
            result = transform.transform(Point(x=args.x, y=args.y, z=args.z), direction)
        else:
            rect = Rectangle(x_min=args.x_min, y_min=args.y_min, x_max=args.x_max, y_max=args.y_max)
            result = transform.transform_bounding_box(rect, direction, samples_per_edge=args.samples)
    except (CoordinateTransformError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.as_json:
        print(json.dumps(result.model_dump(exclude_none=True)))
    elif args.command == 'point':
        print(" ".join(f"{v:.9f}" for v in result.as_tuple() if v is not None))
    else:
        print(" ".join(f"{v:.9f}" for v in result.as_tuple()))
    return 0


def _crs_arg(value: str):
    """Bare integers on the command line are EPSG codes"""
    return int(value) if value.strip().isdigit() else value


if __name__ == "__main__":
    sys.exit(main())
