"""
Non-fatal parse issues.

Anything that affects a single record, entity or heuristic is recorded as a
ParseIssue and returned alongside the (partial) result instead of being
raised, so one bad record never discards an otherwise valid file.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    """Severity of a parse issue."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class IssueCode(str, Enum):
    """Stable identifiers for issue kinds."""

    # Shapefile
    UNSUPPORTED_SHAPE_TYPE = "UnsupportedShapeType"
    GEOMETRY_ERROR = "GeometryError"
    DEGENERATE_GEOMETRY = "DegenerateGeometry"
    NULL_SHAPE = "NullShape"
    DELETED_RECORD = "DeletedRecord"
    MISSING_PROJECTION = "MissingProjection"
    UNRECOGNIZED_PROJECTION = "UnrecognizedProjection"
    UNEXPECTED_VERSION = "UnexpectedVersion"
    UNKNOWN_FIELD_TYPE = "UnknownFieldType"

    # DXF
    CIRCULAR_REFERENCE = "CircularReference"
    MISSING_BLOCK = "MissingBlock"
    MAX_NESTING_EXCEEDED = "MaxNestingExceeded"
    INVALID_ENTITY = "InvalidEntity"
    UNSUPPORTED_ENTITY = "UnsupportedEntity"

    # Detection
    NO_COORDINATE_SYSTEM_DETECTED = "NoCoordinateSystemDetected"


@dataclass(frozen=True)
class ParseIssue:
    """
    One non-fatal problem found while parsing.

    Attributes:
        code: Issue kind
        message: Human-readable description
        severity: How serious the issue is
        record_number: 1-based Shapefile record number, when applicable
        handle: DXF entity handle, when applicable
        details: Extra structured context
    """

    code: IssueCode
    message: str
    severity: IssueSeverity = IssueSeverity.WARNING
    record_number: Optional[int] = None
    handle: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "severity": self.severity.value,
        }
        if self.record_number is not None:
            data["record_number"] = self.record_number
        if self.handle is not None:
            data["handle"] = self.handle
        if self.details:
            data["details"] = self.details
        return data


_LOG_LEVELS = {
    IssueSeverity.INFO: logging.INFO,
    IssueSeverity.WARNING: logging.WARNING,
    IssueSeverity.ERROR: logging.ERROR,
}


class IssueLog:
    """Ordered collection of issues that logs each one as it is added."""

    def __init__(self, source: Optional[str] = None):
        self.source = source
        self._issues: List[ParseIssue] = []

    def add(self, issue: ParseIssue) -> ParseIssue:
        self._issues.append(issue)
        logger.log(
            _LOG_LEVELS[issue.severity],
            f"{issue.code.value}: {issue.message}",
            extra={
                "issue_code": issue.code.value,
                "issue_source": self.source,
                "record_number": issue.record_number,
                "handle": issue.handle,
            },
        )
        return issue

    def record(
        self,
        code: IssueCode,
        message: str,
        severity: IssueSeverity = IssueSeverity.WARNING,
        **kwargs: Any,
    ) -> ParseIssue:
        return self.add(ParseIssue(code=code, message=message, severity=severity, **kwargs))

    def warning(self, code: IssueCode, message: str, **kwargs: Any) -> ParseIssue:
        return self.record(code, message, IssueSeverity.WARNING, **kwargs)

    def info(self, code: IssueCode, message: str, **kwargs: Any) -> ParseIssue:
        return self.record(code, message, IssueSeverity.INFO, **kwargs)

    def error(self, code: IssueCode, message: str, **kwargs: Any) -> ParseIssue:
        return self.record(code, message, IssueSeverity.ERROR, **kwargs)

    def by_code(self, code: IssueCode) -> List[ParseIssue]:
        return [issue for issue in self._issues if issue.code is code]

    def count_by_code(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for issue in self._issues:
            counts[issue.code.value] = counts.get(issue.code.value, 0) + 1
        return counts

    @property
    def has_errors(self) -> bool:
        return any(issue.severity is IssueSeverity.ERROR for issue in self._issues)

    def to_list(self) -> List[Dict[str, Any]]:
        return [issue.to_dict() for issue in self._issues]

    def __iter__(self) -> Iterator[ParseIssue]:
        return iter(self._issues)

    def __len__(self) -> int:
        return len(self._issues)

    def __getitem__(self, index: int) -> ParseIssue:
        return self._issues[index]

    def __bool__(self) -> bool:
        return bool(self._issues)
