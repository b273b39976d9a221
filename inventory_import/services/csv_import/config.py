"""
Runtime configuration of the CSV import pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from inventory_import.core.settings import ImportSettings, get_import_settings

from .field_rules import COLUMN_MAPPING_RULES, FieldMappingRule


SUPPORTED_EXTENSIONS = [".csv", ".txt", ".tsv"]
SUPPORTED_MIME_TYPES = ["text/csv", "text/plain", "text/tab-separated-values"]

DEFAULT_VALUES: Dict[str, Any] = {
    "status": "active",
    "quantity": 0,
    "price": 0,
    "min_stock": 0,
    "max_stock": 1000,
}


@dataclass(frozen=True)
class CSVImportConfig:
    """
    Pipeline configuration.

    Attributes:
        max_file_size: Maximum accepted upload size in bytes
        allowed_delimiters: Candidate delimiters, the first one is forced when
            auto-detection is off
        allowed_encodings: Candidate encodings, the first one is forced when
            auto-detection is off
        batch_size: Rows per sequential import batch
        chunk_size: Rows imported concurrently inside a batch
        inter_batch_delay: Pause between batches in seconds
        default_values: Values applied to every row before validation
        validation_rules: The target schema
    """
    max_file_size: int = 10 * 1024 * 1024
    allowed_delimiters: List[str] = field(default_factory=lambda: [",", ";", "\t", "|"])
    allowed_encodings: List[str] = field(default_factory=lambda: ["utf-8", "latin-1", "windows-1252"])
    batch_size: int = 100
    chunk_size: int = 5
    inter_batch_delay: float = 0.1
    auto_detect_delimiter: bool = True
    auto_detect_encoding: bool = True
    skip_empty_rows: bool = True
    trim_whitespace: bool = True
    case_sensitive_mapping: bool = False
    default_values: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_VALUES))
    validation_rules: List[FieldMappingRule] = field(default_factory=lambda: list(COLUMN_MAPPING_RULES))

    @classmethod
    def from_settings(cls, settings: Optional[ImportSettings] = None) -> "CSVImportConfig":
        """Build the configuration from environment-backed settings"""
        settings = settings or get_import_settings()
        return cls(
            max_file_size=settings.csv_import_max_file_size,
            batch_size=settings.csv_import_batch_size,
            chunk_size=settings.csv_import_chunk_size,
            inter_batch_delay=settings.csv_import_inter_batch_delay,
            auto_detect_delimiter=settings.csv_import_auto_detect_delimiter,
            auto_detect_encoding=settings.csv_import_auto_detect_encoding,
            skip_empty_rows=settings.csv_import_skip_empty_rows,
            trim_whitespace=settings.csv_import_trim_whitespace,
            case_sensitive_mapping=settings.csv_import_case_sensitive_mapping,
        )

    def merged(self, **changes: Any) -> "CSVImportConfig":
        """Return a copy with the given attributes replaced"""
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_file_size": self.max_file_size,
            "allowed_delimiters": list(self.allowed_delimiters),
            "allowed_encodings": list(self.allowed_encodings),
            "batch_size": self.batch_size,
            "chunk_size": self.chunk_size,
            "inter_batch_delay": self.inter_batch_delay,
            "auto_detect_delimiter": self.auto_detect_delimiter,
            "auto_detect_encoding": self.auto_detect_encoding,
            "skip_empty_rows": self.skip_empty_rows,
            "trim_whitespace": self.trim_whitespace,
            "case_sensitive_mapping": self.case_sensitive_mapping,
            "default_values": dict(self.default_values),
            "validation_rules": [rule.field for rule in self.validation_rules],
        }


DEFAULT_CSV_IMPORT_CONFIG = CSVImportConfig()
