"""
Command line entry point.

Usage:
    geoloader inspect roads.shp
    geoloader inspect site.dxf --to WGS84 --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from geoloader import __version__
from geoloader.core.crs.transformer import TransformManager
from geoloader.core.dxf.parser import DxfParser
from geoloader.core.errors import GeoLoaderException
from geoloader.core.logging_config import LogContext, setup_logging
from geoloader.core.shapefile.parser import ShapefileParser
from geoloader.models.crs import CoordinateSystem
from geoloader.models.dxf import DxfParseResult
from geoloader.models.shapefile import ShapefileParseResult

logger = logging.getLogger(__name__)

ParseResult = Union[ShapefileParseResult, DxfParseResult]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geoloader",
        description="Inspect Shapefiles and DXF drawings.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    inspect_parser = subparsers.add_parser(
        "inspect", help="Parse a file and report its contents and coordinate system."
    )
    inspect_parser.add_argument("path", help="Path to a .shp or .dxf file.")
    inspect_parser.add_argument(
        "--to",
        dest="target",
        default=None,
        help="Also report the bounds transformed to this system (e.g. WGS84, LV95, 3857).",
    )
    inspect_parser.add_argument(
        "--json", dest="as_json", action="store_true", help="Print the report as JSON."
    )
    inspect_parser.add_argument(
        "--log-level", default="WARNING", help="Log level for messages on stderr."
    )
    return parser


def _load(path: Path) -> ParseResult:
    suffix = path.suffix.lower()
    if suffix == ".shp":
        return ShapefileParser().parse_path(path)
    if suffix == ".dxf":
        return DxfParser().parse_path(path)
    raise ValueError(f"unsupported file type {path.suffix!r}, expected .shp or .dxf")


def _report(result: ParseResult, target: Optional[CoordinateSystem]) -> Dict[str, Any]:
    report = result.to_dict()
    if target is None:
        return report

    bounds = result.bounds
    source = result.detection.system
    if bounds is None or source is None:
        report["transformed_bounds"] = None
        return report

    manager = TransformManager()
    transformed = manager.transform_bounds(bounds, source, target)
    report["transformed_bounds"] = {"system": target.value, **transformed.to_dict()}
    return report


def _print_summary(path: Path, report: Dict[str, Any]) -> None:
    print(f"File:        {path}")
    if "record_count" in report:
        header = report["header"]
        print(f"Shape type:  {header['shape_type_name']}")
        print(f"Records:     {report['record_count']}")
        print(f"Fields:      {', '.join(report['fields']) or '-'}")
    else:
        print(f"Entities:    {report['entity_count']}")
        for name, count in sorted(report["entity_types"].items()):
            print(f"  {name:<12}{count}")
        print(f"Layers:      {len(report['layers'])}")
        print(f"Blocks:      {len(report['blocks'])}")

    bounds = report["bounds"]
    if bounds:
        print(
            f"Bounds:      {bounds['min_x']:.6f}, {bounds['min_y']:.6f} "
            f"- {bounds['max_x']:.6f}, {bounds['max_y']:.6f}"
        )

    detection = report["detection"]
    print(
        f"System:      {detection['system'] or 'unknown'} "
        f"({detection['method']}, confidence {detection['confidence']:.2f})"
    )
    if detection["reasoning"]:
        print(f"             {detection['reasoning']}")

    if "transformed_bounds" in report:
        transformed = report["transformed_bounds"]
        if transformed is None:
            print("Transformed: not available (no bounds or no detected system)")
        else:
            print(
                f"Transformed: {transformed['system']} "
                f"{transformed['min_x']:.6f}, {transformed['min_y']:.6f} "
                f"- {transformed['max_x']:.6f}, {transformed['max_y']:.6f}"
            )

    issues = report["issues"]
    print(f"Issues:      {len(issues)}")
    for issue in issues:
        print(f"  [{issue['severity']}] {issue['code']}: {issue['message']}")


def _run_inspect(path: str, target: Optional[str], as_json: bool) -> int:
    file_path = Path(path)
    if not file_path.exists():
        print(f"error: file not found: {file_path}", file=sys.stderr)
        return 2

    try:
        target_system = CoordinateSystem.from_code(target) if target else None
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        with LogContext(input_path=str(file_path)):
            result = _load(file_path)
            report = _report(result, target_system)
    except GeoLoaderException as e:
        logger.debug(f"Inspect failed: {e!r}")
        print(f"error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if as_json:
        print(json.dumps(report, indent=2, default=str))
    else:
        _print_summary(file_path, report)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "inspect":
        setup_logging(log_level=args.log_level)
        return _run_inspect(args.path, args.target, args.as_json)

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
