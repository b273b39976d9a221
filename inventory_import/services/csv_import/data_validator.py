"""
Data validation for the CSV import.

Turns parsed rows into partial inventory items, collecting every error and
warning instead of raising. Has no I/O: the output depends only on the table,
the mappings and the default values.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .field_rules import (
    COLUMN_MAPPING_RULES,
    DIGITS_PATTERN,
    FieldMappingRule,
    parse_decimal,
    parse_integer,
    SKU_PATTERN,
    STATUS_MAP,
)
from .models import (
    ColumnMapping,
    CSVImportData,
    ImportPreview,
    ImportRowError,
    ImportRowWarning,
    ImportStatistics,
    ValidatedRecord,
)

logger = logging.getLogger(__name__)


REQUIRED_RECORD_FIELDS = ("sku", "name")
ROWS_PER_SECOND = 100


FIELD_SUGGESTIONS = {
    "sku": "Use un código único alfanumérico",
    "name": "Proporcione un nombre descriptivo",
    "description": "Agregue una descripción detallada",
    "category": "Seleccione una categoría existente",
    "location": "Seleccione una ubicación existente",
    "price": "Use formato numérico (ej: 10.50)",
    "cost": "Use formato numérico (ej: 5.25)",
    "quantity": "Use un número entero (ej: 10)",
    "min_stock": "Use un número entero (ej: 5)",
    "max_stock": "Use un número entero (ej: 100)",
    "status": "Use: active, inactive, o discontinued",
    "barcode": "Use solo dígitos numéricos",
    "tags": "Separe múltiples etiquetas con comas",
    "supplier": "Proporcione el nombre del proveedor",
    "notes": "Agregue notas adicionales",
}


@dataclass(frozen=True)
class FieldCheck:
    """Outcome of validating one cell."""
    is_valid: bool
    message: Optional[str] = None
    warning: Optional[str] = None
    suggestion: Optional[str] = None


VALID = FieldCheck(True)


def is_empty(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _check_sku(value: str) -> FieldCheck:
    sku = value.strip()
    if not sku:
        return FieldCheck(False, "SKU es requerido", suggestion="Proporcione un código SKU único")
    if len(sku) > 50:
        return FieldCheck(False, "SKU es demasiado largo (máximo 50 caracteres)", suggestion="Use un SKU más corto")
    if not SKU_PATTERN.match(sku):
        return FieldCheck(
            False, "SKU contiene caracteres inválidos",
            suggestion="Use solo letras, números, guiones y guiones bajos"
        )
    return VALID


def _check_name(value: str) -> FieldCheck:
    name = value.strip()
    if not name:
        return FieldCheck(
            False, "El nombre del producto es requerido", suggestion="Proporcione un nombre descriptivo"
        )
    if len(name) > 200:
        return FieldCheck(
            False, "El nombre es demasiado largo (máximo 200 caracteres)", suggestion="Use un nombre más corto"
        )
    if len(name) < 2:
        return FieldCheck(
            True, warning="El nombre es muy corto", suggestion="Considere usar un nombre más descriptivo"
        )
    return VALID


def _decimal_check(label: str, example: str, high_limit: Optional[float] = None) -> Callable[[str], FieldCheck]:
    def check(value: str) -> FieldCheck:
        try:
            number = parse_decimal(value)
        except ValueError:
            return FieldCheck(
                False, f"El {label} debe ser un número válido", suggestion=f"Use formato numérico (ej: {example})"
            )
        if number < 0:
            return FieldCheck(
                False, f"El {label} no puede ser negativo", suggestion=f"Use un {label} mayor o igual a 0"
            )
        if high_limit is not None and number > high_limit:
            return FieldCheck(
                True, warning=f"El {label} es muy alto", suggestion=f"Verifique que el {label} sea correcto"
            )
        return VALID
    return check


def _integer_check(
    label: str,
    example: str,
    negative_message: str,
    high_limit: Optional[int] = None,
    high_warning: Optional[str] = None
) -> Callable[[str], FieldCheck]:
    def check(value: str) -> FieldCheck:
        try:
            number = parse_integer(value)
        except ValueError:
            return FieldCheck(
                False, f"{label} debe ser un número entero", suggestion=f"Use un número entero (ej: {example})"
            )
        if number < 0:
            return FieldCheck(False, negative_message, suggestion="Use un valor mayor o igual a 0")
        if high_limit is not None and number > high_limit:
            return FieldCheck(True, warning=high_warning, suggestion="Verifique que la cantidad sea correcta")
        return VALID
    return check


def _check_status(value: str) -> FieldCheck:
    if value.lower().strip() not in STATUS_MAP:
        return FieldCheck(False, "Estado inválido", suggestion="Use: active, inactive, o discontinued")
    return VALID


def _check_barcode(value: str) -> FieldCheck:
    barcode = value.strip()
    if not barcode:
        return VALID
    if not DIGITS_PATTERN.match(barcode):
        return FieldCheck(
            False, "El código de barras debe contener solo números", suggestion="Use solo dígitos numéricos"
        )
    if len(barcode) < 8 or len(barcode) > 14:
        return FieldCheck(
            True, warning="Longitud de código de barras inusual",
            suggestion="Verifique que el código de barras sea correcto"
        )
    return VALID


def _length_check(message: str, suggestion: str, limit: int = 100) -> Callable[[str], FieldCheck]:
    def check(value: str) -> FieldCheck:
        if len(value.strip()) > limit:
            return FieldCheck(False, message, suggestion=suggestion)
        return VALID
    return check


FIELD_CHECKS: Dict[str, Callable[[str], FieldCheck]] = {
    "sku": _check_sku,
    "name": _check_name,
    "price": _decimal_check("precio", "10.50", high_limit=1_000_000),
    "cost": _decimal_check("costo", "5.25"),
    "quantity": _integer_check(
        "La cantidad", "10", "La cantidad no puede ser negativa",
        high_limit=100_000, high_warning="La cantidad es muy alta"
    ),
    "min_stock": _integer_check("El stock mínimo", "5", "El stock mínimo no puede ser negativo"),
    "max_stock": _integer_check("El stock máximo", "100", "El stock máximo no puede ser negativo"),
    "status": _check_status,
    "barcode": _check_barcode,
    "category": _length_check(
        "El nombre de categoría es demasiado largo", "Use un nombre de categoría más corto"
    ),
    "location": _length_check(
        "El nombre de ubicación es demasiado largo", "Use un nombre de ubicación más corto"
    ),
}


class DataValidator:
    """
    Validates and transforms every mapped cell of a parsed table.

    Args:
        rules: Target schema, used for required flags and rule validators
    """

    def __init__(self, rules: Optional[Sequence[FieldMappingRule]] = None):
        rules = rules if rules is not None else COLUMN_MAPPING_RULES
        self.rules: Dict[str, FieldMappingRule] = {rule.field: rule for rule in rules}

    def validate_data(
        self,
        data: CSVImportData,
        mappings: Sequence[ColumnMapping],
        default_values: Optional[Dict[str, Any]] = None
    ) -> ImportPreview:
        """
        Build the import preview.

        Args:
            data: Parsed table
            mappings: Column mappings, only is_mapped entries are used
            default_values: Initial values of every record

        Returns:
            ImportPreview with records, errors, warnings and statistics
        """
        default_values = default_values or {}
        active = self._active_mappings(data, mappings)

        mapped_data: List[ValidatedRecord] = []
        rejected_data: List[ValidatedRecord] = []
        errors: List[ImportRowError] = []
        warnings: List[ImportRowWarning] = []

        for row_index, row in enumerate(data.rows, start=1):
            record: Dict[str, Any] = dict(default_values)
            row_errors: List[ImportRowError] = []
            row_warnings: List[ImportRowWarning] = []

            for column_index, mapping in active:
                cell = row[column_index] if column_index < len(row) else ""
                self._process_cell(row_index, cell, mapping, record, row_errors, row_warnings)

            self._validate_row(row_index, record, row_errors, row_warnings)

            errors.extend(row_errors)
            warnings.extend(row_warnings)

            if row_errors:
                rejected_data.append(ValidatedRecord(row=row_index, data=record))
            elif all(not is_empty(record.get(name)) for name in REQUIRED_RECORD_FIELDS):
                mapped_data.append(ValidatedRecord(row=row_index, data=record))

        statistics = self._calculate_statistics(data, mappings, errors, warnings)
        logger.info(
            f"Validated {statistics.total_rows} rows: {statistics.valid_rows} valid, "
            f"{statistics.error_rows} with errors, {statistics.warning_rows} with warnings"
        )

        return ImportPreview(
            mapped_data=mapped_data,
            rejected_data=rejected_data,
            errors=errors,
            warnings=warnings,
            statistics=statistics,
        )

    @staticmethod
    def _active_mappings(data: CSVImportData, mappings: Sequence[ColumnMapping]):
        """
        (column index, mapping) pairs for mapped columns present in the table.

        Mappings come in column order, so the n-th mapping naming a repeated
        header binds the n-th column carrying it.
        """
        positions: Dict[str, List[int]] = {}
        for column in data.columns:
            positions.setdefault(column.header, []).append(column.index)

        seen: Dict[str, int] = {}
        active = []
        for mapping in mappings:
            indexes = positions.get(mapping.csv_column)
            if not indexes:
                continue
            occurrence = seen.get(mapping.csv_column, 0)
            seen[mapping.csv_column] = occurrence + 1
            if mapping.is_mapped:
                active.append((indexes[min(occurrence, len(indexes) - 1)], mapping))
        return active

    def _process_cell(
        self,
        row_index: int,
        cell: str,
        mapping: ColumnMapping,
        record: Dict[str, Any],
        row_errors: List[ImportRowError],
        row_warnings: List[ImportRowWarning]
    ) -> None:
        field_name = mapping.inventory_field
        rule = self.rules.get(field_name)
        required = mapping.is_required or (rule is not None and rule.required)

        if is_empty(cell):
            if required:
                row_errors.append(ImportRowError(
                    row=row_index,
                    field=field_name,
                    value=cell,
                    message=f"El campo '{field_name}' es requerido",
                    suggestion="Proporcione un valor para este campo",
                ))
            # optional cell keeps its default
            return

        value: Any = cell
        if mapping.transformation is not None:
            try:
                value = mapping.transformation(cell)
            except Exception as e:
                row_errors.append(ImportRowError(
                    row=row_index,
                    field=field_name,
                    value=cell,
                    message=f"Error en transformación: {e}",
                    suggestion=FIELD_SUGGESTIONS.get(field_name),
                ))
                return

        check = self._check_value(field_name, cell, rule)
        if not check.is_valid:
            row_errors.append(ImportRowError(
                row=row_index,
                field=field_name,
                value=cell,
                message=check.message or "Valor inválido",
                suggestion=check.suggestion,
            ))
            return

        if check.warning:
            row_warnings.append(ImportRowWarning(
                row=row_index,
                field=field_name,
                value=cell,
                message=check.warning,
                suggestion=check.suggestion,
            ))

        record[field_name] = value

    @staticmethod
    def _check_value(field_name: str, cell: str, rule: Optional[FieldMappingRule]) -> FieldCheck:
        if rule is not None and rule.has_validation:
            result = rule.validate(cell)
            if not result.is_valid:
                return FieldCheck(
                    False, result.message,
                    suggestion=FIELD_SUGGESTIONS.get(field_name, "Verifique el formato del valor")
                )

        check = FIELD_CHECKS.get(field_name)
        if check is None:
            return VALID
        return check(cell)

    @staticmethod
    def _validate_row(
        row_index: int,
        record: Dict[str, Any],
        row_errors: List[ImportRowError],
        row_warnings: List[ImportRowWarning]
    ) -> None:
        cost = _as_number(record.get("cost"))
        price = _as_number(record.get("price"))
        min_stock = _as_number(record.get("min_stock"))
        max_stock = _as_number(record.get("max_stock"))
        quantity = _as_number(record.get("quantity"))

        if cost and price and cost > price:
            row_warnings.append(ImportRowWarning(
                row=row_index,
                field="cost",
                value=str(record.get("cost")),
                message="El costo es mayor que el precio",
                suggestion="Verifique los valores de costo y precio",
            ))

        if min_stock and max_stock and min_stock > max_stock:
            row_errors.append(ImportRowError(
                row=row_index,
                field="min_stock",
                value=str(record.get("min_stock")),
                message="El stock mínimo no puede ser mayor que el stock máximo",
                suggestion="Ajuste los valores de stock mínimo y máximo",
            ))

        if quantity is not None and min_stock and quantity < min_stock:
            row_warnings.append(ImportRowWarning(
                row=row_index,
                field="quantity",
                value=str(record.get("quantity")),
                message="La cantidad actual es menor que el stock mínimo",
                suggestion="Considere ajustar la cantidad o el stock mínimo",
            ))

    @staticmethod
    def _calculate_statistics(
        data: CSVImportData,
        mappings: Sequence[ColumnMapping],
        errors: Sequence[ImportRowError],
        warnings: Sequence[ImportRowWarning]
    ) -> ImportStatistics:
        error_rows = len({error.row for error in errors})
        mapped_fields = sum(1 for mapping in mappings if mapping.is_mapped)
        return ImportStatistics(
            total_rows=data.total_rows,
            valid_rows=data.total_rows - error_rows,
            error_rows=error_rows,
            warning_rows=len({warning.row for warning in warnings}),
            mapped_fields=mapped_fields,
            unmapped_fields=len(mappings) - mapped_fields,
            estimated_import_time=max(1, math.ceil(data.total_rows / ROWS_PER_SECOND)),
        )


def _as_number(value: Any) -> Optional[float]:
    """Numeric view of a record value, None when absent or not numeric"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return parse_decimal(value)
    except ValueError:
        return None
