"""
Data models for the CSV Import pipeline.

Dataclasses for the parsed table, column mappings, validation output and
import results. Parsed data is immutable; mappings and sessions are mutated
only by the orchestrator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class DataType(str, Enum):
    """Primitive type inferred for a CSV column."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    UNKNOWN = "unknown"


class ImportSessionStatus(str, Enum):
    """Lifecycle of an import session."""

    UPLOADING = "uploading"
    PARSING = "parsing"
    MAPPING = "mapping"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class CSVColumn:
    """
    Column descriptor produced by the parser.

    Attributes:
        index: Position of the column (0-based)
        header: Header label, inferred or synthesized ("Columna N")
        sample_values: First distinct non-empty values (at most 5)
        data_type: Inferred primitive type
        confidence: Share of values consistent with data_type (0-1)
    """
    index: int
    header: str
    sample_values: Tuple[str, ...]
    data_type: DataType
    confidence: float


@dataclass(frozen=True)
class CSVImportData:
    """Parsed table: column descriptors plus data rows (header row excluded)."""
    columns: Tuple[CSVColumn, ...]
    rows: Tuple[Tuple[str, ...], ...]
    total_rows: int
    has_headers: bool
    delimiter: str
    encoding: str


@dataclass
class ColumnMapping:
    """
    Binds one CSV column to at most one inventory field.

    When is_mapped is False, inventory_field is only a placeholder.
    """
    csv_column: str
    inventory_field: str
    is_required: bool
    is_mapped: bool
    confidence: float
    transformation: Optional[Callable[[str], Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "csv_column": self.csv_column,
            "inventory_field": self.inventory_field,
            "is_required": self.is_required,
            "is_mapped": self.is_mapped,
            "confidence": round(self.confidence, 4),
            "has_transformation": self.transformation is not None,
        }


@dataclass(frozen=True)
class ImportRowError:
    """Blocking problem on one row/field (row is 1-based)."""
    row: int
    field: str
    value: str
    message: str
    severity: str = "error"
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "field": self.field,
            "value": self.value,
            "message": self.message,
            "severity": self.severity,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class ImportRowWarning:
    """Informational problem on one row/field, never blocks the row."""
    row: int
    field: str
    value: str
    message: str
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "field": self.field,
            "value": self.value,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class ValidatedRecord:
    """Partial inventory item built from one row."""
    row: int
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)


@dataclass(frozen=True)
class ImportStatistics:
    total_rows: int
    valid_rows: int
    error_rows: int
    warning_rows: int
    mapped_fields: int
    unmapped_fields: int
    estimated_import_time: int  # seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "error_rows": self.error_rows,
            "warning_rows": self.warning_rows,
            "mapped_fields": self.mapped_fields,
            "unmapped_fields": self.unmapped_fields,
            "estimated_import_time": self.estimated_import_time,
        }


@dataclass(frozen=True)
class ImportPreview:
    """
    Full validation output for one file.

    Attributes:
        mapped_data: Records with both required fields and no blocking error
        rejected_data: Records that carried at least one blocking error
        errors: Every blocking problem found
        warnings: Every non-blocking problem found
        statistics: Aggregate counts
    """
    mapped_data: List[ValidatedRecord]
    rejected_data: List[ValidatedRecord]
    errors: List[ImportRowError]
    warnings: List[ImportRowWarning]
    statistics: ImportStatistics

    def to_dict(self, limit: Optional[int] = None) -> Dict[str, Any]:
        records = self.mapped_data if limit is None else self.mapped_data[:limit]
        return {
            "mapped_data": [record.to_dict() for record in records],
            "errors": [error.to_dict() for error in self.errors],
            "warnings": [warning.to_dict() for warning in self.warnings],
            "statistics": self.statistics.to_dict(),
        }


@dataclass
class ImportProgress:
    current_row: int = 0
    total_rows: int = 0
    percentage: int = 0
    current_operation: str = ""
    errors: List[ImportRowError] = field(default_factory=list)
    warnings: List[ImportRowWarning] = field(default_factory=list)
    is_complete: bool = False
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_row": self.current_row,
            "total_rows": self.total_rows,
            "percentage": self.percentage,
            "current_operation": self.current_operation,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "is_complete": self.is_complete,
            "is_error": self.is_error,
        }


@dataclass(frozen=True)
class FailedItem:
    row: int
    data: Dict[str, Any]
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "data": self.data, "error": self.error}


@dataclass
class ImportResult:
    """
    Outcome of one import run.

    Attributes:
        success: True when no row failed
        imported_count: Rows created through the inventory API
        error_count: Rows that failed (validation or API)
        warning_count: Warnings carried over from the preview
        duration: Wall-clock duration in seconds
        cancelled: True when the run was stopped through cancel()
    """
    success: bool = False
    imported_count: int = 0
    error_count: int = 0
    warning_count: int = 0
    errors: List[ImportRowError] = field(default_factory=list)
    warnings: List[ImportRowWarning] = field(default_factory=list)
    duration: float = 0.0
    imported_items: List[Dict[str, Any]] = field(default_factory=list)
    failed_items: List[FailedItem] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed_count(self) -> int:
        return self.imported_count + self.error_count

    @property
    def success_rate(self) -> float:
        """Percentage of processed rows that were imported"""
        if self.processed_count == 0:
            return 0.0
        return (self.imported_count / self.processed_count) * 100

    @property
    def error_rate(self) -> float:
        if self.processed_count == 0:
            return 0.0
        return (self.error_count / self.processed_count) * 100

    @property
    def warning_rate(self) -> float:
        if self.processed_count == 0:
            return 0.0
        return (self.warning_count / self.processed_count) * 100

    @property
    def average_time_per_item(self) -> float:
        if self.processed_count == 0:
            return 0.0
        return self.duration / self.processed_count

    def to_dict(self) -> Dict[str, Any]:
        """Converts into a dict for the API response"""
        return {
            "success": self.success,
            "imported_count": self.imported_count,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "duration": round(self.duration, 3),
            "cancelled": self.cancelled,
            "success_rate": round(self.success_rate, 2),
            "errors": [error.to_dict() for error in self.errors],
            "warnings": [warning.to_dict() for warning in self.warnings],
            "imported_items": self.imported_items,
            "failed_items": [item.to_dict() for item in self.failed_items],
        }


@dataclass
class ImportSession:
    """State of one user-initiated import, owned by CSVImportService."""
    id: str
    file_name: str
    file_size: int
    content: bytes
    config: Any
    status: ImportSessionStatus = ImportSessionStatus.UPLOADING
    progress: ImportProgress = field(default_factory=ImportProgress)
    data: Optional[CSVImportData] = None
    mappings: Optional[List[ColumnMapping]] = None
    preview: Optional[ImportPreview] = None
    result: Optional[ImportResult] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "columns": [
                {
                    "index": column.index,
                    "header": column.header,
                    "sample_values": list(column.sample_values),
                    "data_type": column.data_type.value,
                    "confidence": round(column.confidence, 4),
                }
                for column in self.data.columns
            ] if self.data else [],
            "total_rows": self.data.total_rows if self.data else 0,
            "mappings": [mapping.to_dict() for mapping in self.mappings] if self.mappings else [],
            "statistics": self.preview.statistics.to_dict() if self.preview else None,
            "result": self.result.to_dict() if self.result else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
