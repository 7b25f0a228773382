"""
DXF parsing module.

Reads a DXF document with ezdxf and converts model space entities, block
definitions and the layer table into the typed models of
:mod:`geoloader.models.dxf`, then expands block references and detects the
coordinate system.
"""

import io
import logging
import re
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import ezdxf
from ezdxf import path as ezdxf_path
from ezdxf.document import Drawing
from ezdxf.lldxf.const import DXFError

from geoloader.core.config import Settings, settings as default_settings
from geoloader.core.dxf.detection import detect_dxf_system
from geoloader.core.dxf.expander import BlockExpander
from geoloader.core.errors import DxfParseError, MissingEntitiesError
from geoloader.models.dxf import (
    DxfArc,
    DxfBlock,
    DxfCircle,
    DxfDocument,
    DxfEllipse,
    DxfEntity,
    DxfFace,
    DxfHatch,
    DxfInsert,
    DxfLayer,
    DxfLine,
    DxfParseResult,
    DxfPoint,
    DxfPolyline,
    DxfSolid,
    DxfSpline,
    DxfText,
    Point3,
)
from geoloader.models.issues import IssueCode, IssueLog
from geoloader.utils.logging import PerformanceTimer

logger = logging.getLogger(__name__)

ENTITIES_SECTION = re.compile(r"^\s*2\s*\r?\n\s*ENTITIES\s*$", re.MULTILINE)
BINARY_SENTINEL = b"AutoCAD Binary DXF"
HATCH_FLATTENING_DISTANCE = 0.01


def _point(value: Any) -> Point3:
    """Convert a Vec2/Vec3/tuple to a 3-tuple of floats."""
    values = tuple(float(v) for v in value)
    if len(values) == 2:
        return (values[0], values[1], 0.0)
    return (values[0], values[1], values[2])


def _common(entity: Any) -> Dict[str, Any]:
    linetype = entity.dxf.get("linetype")
    return {
        "handle": entity.dxf.get("handle"),
        "layer": entity.dxf.get("layer", "0"),
        "line_type": linetype if linetype and linetype.upper() != "BYLAYER" else None,
    }


def _convert_line(e: Any) -> DxfEntity:
    return DxfLine(start=_point(e.dxf.start), end=_point(e.dxf.end), **_common(e))


def _convert_point(e: Any) -> DxfEntity:
    return DxfPoint(position=_point(e.dxf.location), **_common(e))


def _convert_lwpolyline(e: Any) -> DxfEntity:
    elevation = float(e.dxf.get("elevation", 0.0))
    vertices = tuple((float(x), float(y), elevation) for x, y in e.get_points("xy"))
    return DxfPolyline(vertices=vertices, closed=bool(e.closed), **_common(e))


def _convert_polyline(e: Any) -> DxfEntity:
    if not (e.is_2d_polyline or e.is_3d_polyline):
        raise ValueError("polyface and mesh POLYLINEs are not supported")
    vertices = tuple(_point(v) for v in e.points())
    return DxfPolyline(vertices=vertices, closed=bool(e.is_closed), **_common(e))


def _convert_circle(e: Any) -> DxfEntity:
    return DxfCircle(center=_point(e.dxf.center), radius=float(e.dxf.radius), **_common(e))


def _convert_arc(e: Any) -> DxfEntity:
    return DxfArc(
        center=_point(e.dxf.center),
        radius=float(e.dxf.radius),
        start_angle=float(e.dxf.start_angle),
        end_angle=float(e.dxf.end_angle),
        **_common(e),
    )


def _convert_ellipse(e: Any) -> DxfEntity:
    return DxfEllipse(
        center=_point(e.dxf.center),
        major_axis=_point(e.dxf.major_axis),
        minor_axis_ratio=float(e.dxf.ratio),
        start_param=float(e.dxf.get("start_param", 0.0)),
        end_param=float(e.dxf.get("end_param", 6.283185307179586)),
        **_common(e),
    )


def _convert_text(e: Any) -> DxfEntity:
    return DxfText(
        position=_point(e.dxf.insert),
        text=e.dxf.get("text", ""),
        height=float(e.dxf.get("height", 0.0)),
        rotation=float(e.dxf.get("rotation", 0.0)),
        **_common(e),
    )


def _convert_mtext(e: Any) -> DxfEntity:
    return DxfText(
        position=_point(e.dxf.insert),
        text=e.plain_text(),
        height=float(e.dxf.get("char_height", 0.0)),
        rotation=float(e.dxf.get("rotation", 0.0)),
        **_common(e),
    )


def _convert_insert(e: Any) -> DxfEntity:
    return DxfInsert(
        block=e.dxf.name,
        position=_point(e.dxf.insert),
        scale=(
            float(e.dxf.get("xscale", 1.0)),
            float(e.dxf.get("yscale", 1.0)),
            float(e.dxf.get("zscale", 1.0)),
        ),
        rotation=float(e.dxf.get("rotation", 0.0)),
        rows=int(e.dxf.get("row_count", 1)),
        columns=int(e.dxf.get("column_count", 1)),
        row_spacing=float(e.dxf.get("row_spacing", 0.0)),
        col_spacing=float(e.dxf.get("column_spacing", 0.0)),
        **_common(e),
    )


def _convert_solid(e: Any) -> DxfEntity:
    corners = [_point(e.dxf.get(f"vtx{i}", e.dxf.vtx2)) for i in range(4)]
    # Third and fourth corners are stored crosswise
    ring = (corners[0], corners[1], corners[3], corners[2])
    return DxfSolid(vertices=ring, **_common(e))


def _convert_3dface(e: Any) -> DxfEntity:
    corners = tuple(_point(e.dxf.get(f"vtx{i}", e.dxf.vtx2)) for i in range(4))
    return DxfFace(vertices=corners, **_common(e))


def _convert_hatch(e: Any) -> DxfEntity:
    loops = tuple(
        tuple(_point(v) for v in boundary.flattening(HATCH_FLATTENING_DISTANCE))
        for boundary in ezdxf_path.from_hatch(e)
    )
    return DxfHatch(
        loops=loops,
        pattern=e.dxf.get("pattern_name"),
        solid_fill=bool(e.dxf.get("solid_fill", 1)),
        **_common(e),
    )


def _convert_spline(e: Any) -> DxfEntity:
    return DxfSpline(
        degree=int(e.dxf.degree),
        control_points=tuple(_point(p) for p in e.control_points),
        knots=tuple(float(k) for k in e.knots),
        weights=tuple(float(w) for w in e.weights),
        **_common(e),
    )


CONVERTERS: Dict[str, Callable[[Any], DxfEntity]] = {
    "LINE": _convert_line,
    "POINT": _convert_point,
    "LWPOLYLINE": _convert_lwpolyline,
    "POLYLINE": _convert_polyline,
    "CIRCLE": _convert_circle,
    "ARC": _convert_arc,
    "ELLIPSE": _convert_ellipse,
    "TEXT": _convert_text,
    "MTEXT": _convert_mtext,
    "INSERT": _convert_insert,
    "SPLINE": _convert_spline,
    "SOLID": _convert_solid,
    "3DFACE": _convert_3dface,
    "HATCH": _convert_hatch,
}


def decode_dxf(data: bytes) -> str:
    """Decode ASCII DXF bytes as UTF-8, falling back to cp1252."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("DXF is not UTF-8, decoding as cp1252")
        return data.decode("cp1252", errors="replace")


def _header_point(doc: Drawing, name: str) -> Optional[Point3]:
    value = doc.header.get(name)
    if value is None:
        return None
    try:
        return _point(value)
    except (TypeError, ValueError):
        return None


class DxfParser:
    """
    Parse DXF drawings into expanded, typed entities.

    Handles:
    - LINE, POINT, LWPOLYLINE, POLYLINE, CIRCLE, ARC, ELLIPSE, TEXT, MTEXT,
      INSERT/MINSERT and SPLINE entities
    - SOLID, 3DFACE and HATCH fills as polygons
    - Layer table with frozen/locked/visibility flags
    - Block definitions and nested, arrayed block references
    - Coordinate system detection from points or header extents
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        """
        Initialize DXF parser.

        Args:
            config: Settings instance (defaults to the global settings)
        """
        self.config = config or default_settings

    def parse(self, data: Union[bytes, str], source: Optional[str] = None) -> DxfParseResult:
        """
        Parse DXF content.

        Args:
            data: ASCII DXF content as bytes or text
            source: Name used in log records

        Returns:
            DxfParseResult with expanded entities, issues and detection

        Raises:
            MissingEntitiesError: If the document has no ENTITIES section
            DxfParseError: If ezdxf cannot read the document
        """
        if isinstance(data, bytes):
            if data.startswith(BINARY_SENTINEL):
                raise DxfParseError("Binary DXF is not supported", details={"source": source})
            text = decode_dxf(data)
        else:
            text = data

        if not ENTITIES_SECTION.search(text):
            raise MissingEntitiesError()

        try:
            doc = ezdxf.read(io.StringIO(text))
        except DXFError as e:
            raise DxfParseError(f"Invalid DXF structure: {e}", details={"source": source}) from e

        return self.parse_document(doc, source=source)

    def parse_path(self, path: Union[str, Path]) -> DxfParseResult:
        """
        Parse a DXF file from disk.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return self.parse(path.read_bytes(), source=path.name)

    def parse_document(self, doc: Drawing, source: Optional[str] = None) -> DxfParseResult:
        """
        Convert, expand and classify an already loaded ezdxf drawing.

        Args:
            doc: ezdxf Drawing
            source: Name used in log records

        Returns:
            DxfParseResult
        """
        issues = IssueLog(source)
        with PerformanceTimer("dxf.parse", source_file=source) as timer:
            document = self.read_document(doc, issues)
            expander = BlockExpander(document.blocks, issues, self.config.max_block_depth)
            entities = expander.expand(document.entities)
            detection = detect_dxf_system(entities, document, issues, self.config)

        logger.info(
            f"Parsed DXF: {len(document.entities)} model space entities expanded to "
            f"{len(entities)} ({len(document.blocks)} blocks, {len(issues)} issues, "
            f"system={detection.system})"
        )
        return DxfParseResult(
            document=document,
            entities=entities,
            issues=issues,
            detection=detection,
            duration_ms=timer.duration_ms,
        )

    def read_document(self, doc: Drawing, issues: IssueLog) -> DxfDocument:
        """Convert layers, blocks and model space without expanding blocks."""
        layers = self._read_layers(doc)

        blocks: Dict[str, DxfBlock] = {}
        for block_layout in doc.blocks:
            if block_layout.is_any_layout:
                continue
            block_entity = block_layout.block
            blocks[block_layout.name] = DxfBlock(
                name=block_layout.name,
                position=_point(block_entity.dxf.get("base_point", (0.0, 0.0, 0.0))),
                entities=tuple(self._convert_all(block_layout, issues)),
                layer=block_entity.dxf.get("layer", "0"),
            )

        units = doc.header.get("$INSUNITS")
        return DxfDocument(
            entities=self._convert_all(doc.modelspace(), issues),
            blocks=blocks,
            layers=layers,
            ext_min=_header_point(doc, "$EXTMIN"),
            ext_max=_header_point(doc, "$EXTMAX"),
            version=doc.header.get("$ACADVER"),
            units=int(units) if units is not None else None,
        )

    def _read_layers(self, doc: Drawing) -> Dict[str, DxfLayer]:
        layers: Dict[str, DxfLayer] = {}
        for layer in doc.layers:
            name = layer.dxf.name
            layers[name] = DxfLayer(
                name=name,
                color=abs(int(layer.dxf.get("color", 7))),
                line_type=layer.dxf.get("linetype"),
                frozen=layer.is_frozen(),
                locked=layer.is_locked(),
                visible=layer.is_on(),
            )
        return layers

    def _convert_all(self, entities: Iterable[Any], issues: IssueLog) -> List[DxfEntity]:
        converted: List[DxfEntity] = []
        unsupported: Counter = Counter()

        for entity in entities:
            dxftype = entity.dxftype()
            converter = CONVERTERS.get(dxftype)
            if converter is None:
                unsupported[dxftype] += 1
                continue

            handle = entity.dxf.get("handle")
            try:
                result = converter(entity)
            except (AttributeError, TypeError, ValueError, DXFError) as e:
                issues.warning(
                    IssueCode.INVALID_ENTITY,
                    f"{dxftype} {handle} could not be read: {e}",
                    handle=handle,
                    details={"type": dxftype},
                )
                continue

            problems = result.validate()
            if problems:
                issues.warning(
                    IssueCode.INVALID_ENTITY,
                    f"{dxftype} {handle}: {'; '.join(problems)}",
                    handle=handle,
                    details={"type": dxftype, "problems": problems},
                )
            converted.append(result)

        for dxftype, count in sorted(unsupported.items()):
            issues.info(
                IssueCode.UNSUPPORTED_ENTITY,
                f"Skipped {count} unsupported {dxftype} entit{'y' if count == 1 else 'ies'}",
                details={"type": dxftype, "count": count},
            )
        return converted


def load_dxf(
    source: Union[str, Path, bytes], config: Optional[Settings] = None
) -> DxfParseResult:
    """
    Parse a DXF file path or raw bytes (convenience function).

    Args:
        source: Path to a .dxf file, or its bytes
        config: Optional settings override

    Returns:
        DxfParseResult
    """
    parser = DxfParser(config)
    if isinstance(source, bytes):
        return parser.parse(source)
    return parser.parse_path(source)
