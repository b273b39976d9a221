"""
CSV Parser for the inventory import pipeline.

Handles delimiter/encoding/header detection and per-column type inference.
Only parsing logic lives here: mapping and validation are separate stages.
"""
from __future__ import annotations

import csv
import io
import logging
import math
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from inventory_import.core.exceptions import CSVParseException

from .config import CSVImportConfig, DEFAULT_CSV_IMPORT_CONFIG, SUPPORTED_EXTENSIONS
from .models import CSVColumn, CSVImportData, DataType

logger = logging.getLogger(__name__)


DELIMITER_SAMPLE_SIZE = 1000
HEADER_MIN_AVERAGE_LENGTH = 5
SAMPLE_VALUES_LIMIT = 5

BOOLEAN_VALUES = frozenset({
    "true", "false", "yes", "no", "y", "n", "1", "0",
    "verdadero", "falso", "sí", "si", "activo", "inactivo",
})

# (shape, strptime format) pairs, checked in order
DATE_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "%Y-%m-%d"),
    (re.compile(r"^\d{2}/\d{2}/\d{4}$"), "%m/%d/%Y"),
    (re.compile(r"^\d{2}-\d{2}-\d{4}$"), "%m-%d-%Y"),
    (re.compile(r"^\d{4}/\d{2}/\d{2}$"), "%Y/%m/%d"),
    (re.compile(r"^\d{2}/\d{2}/\d{2}$"), "%m/%d/%y"),
)

# Currency symbol, thousands separators and spacing inside numbers
NUMERIC_NOISE = re.compile(r"[$,\s]")

# Classification order, also used to break plurality ties
TYPE_CHECK_ORDER = (DataType.NUMBER, DataType.BOOLEAN, DataType.DATE)


def is_numeric(value: str) -> bool:
    """True for plain or money-formatted numbers ('19.99', '$1,234.56')"""
    cleaned = NUMERIC_NOISE.sub("", value)
    if not cleaned:
        return False
    try:
        return math.isfinite(float(cleaned))
    except ValueError:
        return False


def is_boolean(value: str) -> bool:
    return value.strip().lower() in BOOLEAN_VALUES


def is_date(value: str) -> bool:
    """True when the value has one of the known date shapes and is a real date"""
    candidate = value.strip()
    for pattern, date_format in DATE_PATTERNS:
        if pattern.match(candidate):
            try:
                datetime.strptime(candidate, date_format)
            except ValueError:
                return False
            return True
    return False


_TYPE_CHECKS = {
    DataType.NUMBER: is_numeric,
    DataType.BOOLEAN: is_boolean,
    DataType.DATE: is_date,
}


def classify_value(value: str) -> DataType:
    for data_type in TYPE_CHECK_ORDER:
        if _TYPE_CHECKS[data_type](value):
            return data_type
    return DataType.STRING


def format_file_size(size: int) -> str:
    """Human readable size: '0 Bytes', '1.5 KB', '10 MB'"""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size / 1024 ** exponent, 2)
    if float(value).is_integer():
        value = int(value)
    return f"{value} {units[exponent]}"


@dataclass(frozen=True)
class FileValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


class CSVParser:
    """
    Parser CSV with delimiter auto-detection and column type inference.

    The parser keeps no state between calls: the same input always yields the
    same CSVImportData.
    """

    def __init__(self, config: CSVImportConfig = DEFAULT_CSV_IMPORT_CONFIG):
        self.config = config

    def parse_file(self, content: bytes, file_name: Optional[str] = None) -> CSVImportData:
        """
        Decode an uploaded file and parse it.

        Args:
            content: Raw file bytes
            file_name: Original name, used as encoding hint

        Returns:
            CSVImportData

        Raises:
            CSVParseException: If the bytes cannot be decoded or hold no data
        """
        encoding = self.detect_encoding(file_name)
        text = None
        for candidate in self._encoding_candidates(encoding):
            try:
                text = content.decode(candidate)
            except (UnicodeDecodeError, LookupError):
                continue
            encoding = "utf-8" if candidate == "utf-8-sig" else candidate
            break

        if text is None:
            raise CSVParseException(
                "No se pudo decodificar el archivo. Use codificación UTF-8 o Latin-1",
                {"file_name": file_name, "encodings": self.config.allowed_encodings}
            )

        return self._parse(text, file_name, encoding)

    def parse_text(self, text: str, file_name: Optional[str] = None) -> CSVImportData:
        """
        Parse already-decoded CSV text.

        Raises:
            CSVParseException: If no rows remain, or no data rows remain after
                the header row is stripped
        """
        return self._parse(text, file_name, self.detect_encoding(file_name))

    def _parse(self, text: str, file_name: Optional[str], encoding: str) -> CSVImportData:
        if text.startswith("﻿"):
            text = text[1:]

        delimiter = self.detect_delimiter(text)
        rows = self._split_rows(text, delimiter)

        if not rows:
            raise CSVParseException(
                "El archivo CSV está vacío o no tiene datos válidos",
                {"file_name": file_name}
            )

        has_headers = self.detect_headers(rows[0])
        column_count = max(len(row) for row in rows)
        if has_headers:
            header_row, data_rows = rows[0], rows[1:]
        else:
            header_row, data_rows = [], rows

        if not data_rows:
            raise CSVParseException(
                "El archivo CSV no contiene filas de datos",
                {"file_name": file_name, "has_headers": has_headers}
            )

        padded_rows = tuple(
            tuple(row) + ("",) * (column_count - len(row)) for row in data_rows
        )
        columns = tuple(
            self._build_column(index, header_row, padded_rows)
            for index in range(column_count)
        )

        logger.info(
            f"Parsed CSV '{file_name}': {len(padded_rows)} rows, {column_count} columns, "
            f"delimiter={delimiter!r}, headers={has_headers}"
        )

        return CSVImportData(
            columns=columns,
            rows=padded_rows,
            total_rows=len(padded_rows),
            has_headers=has_headers,
            delimiter=delimiter,
            encoding=encoding,
        )

    def _split_rows(self, text: str, delimiter: str) -> List[List[str]]:
        reader = csv.reader(io.StringIO(text), delimiter=delimiter)
        rows = []
        for row in reader:
            if self.config.trim_whitespace:
                row = [cell.strip() for cell in row]
            if self.config.skip_empty_rows and not any(cell.strip() for cell in row):
                continue
            rows.append(row)
        return rows

    def detect_delimiter(self, text: str) -> str:
        """
        Pick the allowed delimiter occurring most often in the first
        characters of the text.

        Returns:
            Delimiter character, ',' when nothing matches
        """
        if not self.config.auto_detect_delimiter:
            return self.config.allowed_delimiters[0] if self.config.allowed_delimiters else ","

        sample = text[:DELIMITER_SAMPLE_SIZE]
        delimiter_counts = {
            delimiter: sample.count(delimiter)
            for delimiter in self.config.allowed_delimiters
        }
        if not delimiter_counts:
            return ","

        best_delimiter = max(delimiter_counts, key=delimiter_counts.get)
        if delimiter_counts[best_delimiter] == 0:
            return ","
        return best_delimiter

    def detect_encoding(self, file_name: Optional[str]) -> str:
        """Best-effort encoding guess from the file name"""
        if not self.config.auto_detect_encoding:
            return self.config.allowed_encodings[0] if self.config.allowed_encodings else "utf-8"

        hint = (file_name or "").lower()
        if "utf8" in hint or "utf-8" in hint:
            return "utf-8"
        if "latin" in hint or "iso" in hint:
            return "latin-1"
        return "utf-8"

    def _encoding_candidates(self, preferred: str) -> List[str]:
        candidates = ["utf-8-sig" if preferred == "utf-8" else preferred]
        for encoding in self.config.allowed_encodings:
            normalized = "utf-8-sig" if encoding == "utf-8" else encoding
            if normalized not in candidates:
                candidates.append(normalized)
        return candidates

    @staticmethod
    def detect_headers(first_row: Sequence[str]) -> bool:
        """
        The first row is a header when every cell is text (neither number nor
        date) and the average cell length exceeds the threshold.
        """
        if not first_row:
            return False
        for cell in first_row:
            value = cell.strip()
            if is_numeric(value) or is_date(value):
                return False
        average_length = sum(len(cell.strip()) for cell in first_row) / len(first_row)
        return average_length > HEADER_MIN_AVERAGE_LENGTH

    def _build_column(
        self,
        index: int,
        header_row: Sequence[str],
        rows: Sequence[Sequence[str]]
    ) -> CSVColumn:
        header = header_row[index].strip() if index < len(header_row) else ""
        if not header:
            header = f"Columna {index + 1}"

        values = [row[index] for row in rows if row[index].strip()]
        data_type, confidence = self.infer_type(values)

        samples: List[str] = []
        for value in values:
            if value not in samples:
                samples.append(value)
            if len(samples) == SAMPLE_VALUES_LIMIT:
                break

        return CSVColumn(
            index=index,
            header=header,
            sample_values=tuple(samples),
            data_type=data_type,
            confidence=confidence,
        )

    @staticmethod
    def infer_type(values: Sequence[str]) -> Tuple[DataType, float]:
        """
        Plurality vote over the non-empty values of a column.

        Returns:
            Tuple (data_type, confidence) where confidence is the share of
            values consistent with the winning type
        """
        if not values:
            return DataType.UNKNOWN, 0.0

        votes = Counter(classify_value(value) for value in values)
        ranking = TYPE_CHECK_ORDER + (DataType.STRING,)
        winner = max(ranking, key=lambda data_type: (votes[data_type], -ranking.index(data_type)))

        if winner == DataType.STRING:
            consistent = votes[DataType.STRING]
        else:
            check = _TYPE_CHECKS[winner]
            consistent = sum(1 for value in values if check(value))
        return winner, consistent / len(values)

    def validate_file(self, file_name: str, size: int) -> FileValidation:
        """
        File-level checks run before any parsing. Never raises.

        Returns:
            FileValidation with every human-readable reason found
        """
        errors = []
        if size > self.config.max_file_size:
            max_mb = self.config.max_file_size / (1024 * 1024)
            max_label = int(max_mb) if float(max_mb).is_integer() else round(max_mb, 2)
            errors.append(f"El archivo es demasiado grande. Máximo permitido: {max_label}MB")

        extension = os.path.splitext(file_name or "")[1].lower()
        if extension not in SUPPORTED_EXTENSIONS:
            errors.append("Tipo de archivo no soportado. Use archivos CSV, TXT o TSV")

        if size == 0:
            errors.append("El archivo está vacío")

        return FileValidation(is_valid=not errors, errors=errors)

    def get_file_stats(self, file_name: str, size: int) -> Dict[str, Any]:
        return {
            "file_name": file_name,
            "size": size,
            "size_formatted": format_file_size(size),
            "extension": os.path.splitext(file_name or "")[1].lower(),
            "max_size": self.config.max_file_size,
            "max_size_formatted": format_file_size(self.config.max_file_size),
        }
