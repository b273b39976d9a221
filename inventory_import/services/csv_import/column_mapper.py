"""
Column mapper: matches parsed CSV columns to inventory fields.

Scoring combines header similarity, data type compatibility and a check of the
column's sample values against the rule's own validator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from .csv_parser import is_date, is_numeric
from .field_rules import COLUMN_MAPPING_RULES, FieldMappingRule, UNMAPPED_FIELD
from .models import ColumnMapping, CSVColumn, DataType

logger = logging.getLogger(__name__)


HEADER_WEIGHT = 0.6
TYPE_WEIGHT = 0.3
SAMPLE_WEIGHT = 0.1

MATCH_THRESHOLD = 0.3
SUGGESTION_THRESHOLD = 0.2

TYPE_PRIORITY = {
    DataType.STRING: 3,
    DataType.NUMBER: 2,
    DataType.DATE: 2,
    DataType.BOOLEAN: 1,
    DataType.UNKNOWN: 0,
}

# rule type -> column types accepted at reduced compatibility
COMPATIBLE_TYPES = {
    DataType.STRING: {DataType.UNKNOWN},
    DataType.NUMBER: {DataType.STRING},
    DataType.BOOLEAN: {DataType.STRING},
    DataType.DATE: {DataType.STRING},
}


def levenshtein_similarity(first: str, second: str) -> float:
    """(max_len - distance) / max_len, 1.0 for two empty strings"""
    max_length = max(len(first), len(second))
    if max_length == 0:
        return 1.0

    previous = list(range(len(second) + 1))
    for i, first_char in enumerate(first, start=1):
        current = [i]
        for j, second_char in enumerate(second, start=1):
            cost = 0 if first_char == second_char else 1
            current.append(min(
                current[j - 1] + 1,
                previous[j] + 1,
                previous[j - 1] + cost,
            ))
        previous = current

    return (max_length - previous[-1]) / max_length


@dataclass(frozen=True)
class FieldSuggestion:
    field: str
    confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "confidence": round(self.confidence, 4), "reason": self.reason}


@dataclass(frozen=True)
class ColumnSuggestions:
    column: str
    suggestions: List[FieldSuggestion]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
        }


@dataclass(frozen=True)
class MappingValidation:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


class ColumnMapper:
    """
    Deterministic column to field matcher.

    Args:
        rules: Target schema, in tie-breaking order
        case_sensitive: Compare headers and patterns without lower-casing
    """

    def __init__(
        self,
        rules: Optional[Sequence[FieldMappingRule]] = None,
        case_sensitive: bool = False
    ):
        self.rules = list(rules) if rules is not None else list(COLUMN_MAPPING_RULES)
        self.case_sensitive = case_sensitive

    def auto_map_columns(self, columns: Sequence[CSVColumn]) -> List[ColumnMapping]:
        """
        Map every column to its best unclaimed field.

        Columns with higher type confidence, then more distinguishable types,
        claim fields first. The result keeps the original column order.
        """
        ordered = sorted(
            columns,
            key=lambda column: (-column.confidence, -TYPE_PRIORITY.get(column.data_type, 0))
        )

        used_fields: Set[str] = set()
        by_index: Dict[int, ColumnMapping] = {}
        for column in ordered:
            rule, confidence = self._find_best_rule(column, used_fields)
            if rule is None:
                by_index[column.index] = ColumnMapping(
                    csv_column=column.header,
                    inventory_field=UNMAPPED_FIELD,
                    is_required=False,
                    is_mapped=False,
                    confidence=0.0,
                )
                continue

            used_fields.add(rule.field)
            by_index[column.index] = ColumnMapping(
                csv_column=column.header,
                inventory_field=rule.field,
                is_required=rule.required,
                is_mapped=True,
                confidence=confidence,
                transformation=rule.transformation,
            )

        mappings = [by_index[column.index] for column in columns]
        logger.debug(
            f"Auto-mapped {sum(1 for m in mappings if m.is_mapped)}/{len(mappings)} columns"
        )
        return mappings

    def _find_best_rule(self, column: CSVColumn, used_fields: Set[str]):
        best_rule = None
        best_confidence = 0.0
        for rule in self.rules:
            if rule.field in used_fields:
                continue
            confidence = self.calculate_match_confidence(column, rule)
            # strict comparison keeps the first rule on ties
            if confidence > MATCH_THRESHOLD and (best_rule is None or confidence > best_confidence):
                best_rule = rule
                best_confidence = confidence
        return best_rule, best_confidence

    def calculate_match_confidence(self, column: CSVColumn, rule: FieldMappingRule) -> float:
        header_score = self.header_similarity(column.header, rule.patterns)
        type_score = self.type_compatibility(column.data_type, rule.data_type)
        sample_score = self.sample_score(column.sample_values, rule)

        confidence = (
            header_score * HEADER_WEIGHT
            + type_score * TYPE_WEIGHT
            + sample_score * SAMPLE_WEIGHT
        ) * rule.weight
        return max(0.0, min(confidence, 1.0))

    def header_similarity(self, header: str, patterns: Sequence[str]) -> float:
        """Best similarity of the header against any pattern"""
        normalized = self._normalize(header)
        best = 0.0
        for pattern in patterns:
            candidate = self._normalize(pattern)
            if normalized == candidate:
                return 1.0
            if candidate in normalized or normalized in candidate:
                best = max(best, 0.8)
                continue
            best = max(best, levenshtein_similarity(normalized, candidate))
        return best

    @staticmethod
    def type_compatibility(column_type: DataType, rule_type: DataType) -> float:
        if column_type == rule_type:
            return 1.0
        if column_type in COMPATIBLE_TYPES.get(rule_type, ()):
            return 0.7
        return 0.2

    @staticmethod
    def sample_score(sample_values: Sequence[str], rule: FieldMappingRule) -> float:
        """Share of sample values accepted by the rule (or a generic type check)"""
        if not sample_values:
            return 0.0
        valid = sum(1 for value in sample_values if _sample_is_valid(value, rule))
        return valid / len(sample_values)

    def _normalize(self, value: str) -> str:
        value = value.strip()
        return value if self.case_sensitive else value.lower()

    def suggest_mappings(
        self,
        columns: Sequence[CSVColumn],
        current_mappings: Sequence[ColumnMapping]
    ) -> List[ColumnSuggestions]:
        """
        Ranked alternatives for every column that is not mapped yet.

        Columns without any candidate above the suggestion threshold are
        omitted.
        """
        used_fields = {m.inventory_field for m in current_mappings if m.is_mapped}
        mapped_columns = {m.csv_column for m in current_mappings if m.is_mapped}

        result = []
        for column in columns:
            if column.header in mapped_columns:
                continue

            candidates = []
            for rule in self.rules:
                if rule.field in used_fields:
                    continue
                confidence = self.calculate_match_confidence(column, rule)
                if confidence > SUGGESTION_THRESHOLD:
                    candidates.append(FieldSuggestion(
                        field=rule.field,
                        confidence=confidence,
                        reason=self._suggestion_reason(column, rule),
                    ))

            if candidates:
                candidates.sort(key=lambda suggestion: suggestion.confidence, reverse=True)
                result.append(ColumnSuggestions(column=column.header, suggestions=candidates))

        return result

    def _suggestion_reason(self, column: CSVColumn, rule: FieldMappingRule) -> str:
        reasons = []

        header_score = self.header_similarity(column.header, rule.patterns)
        if header_score > 0.8:
            reasons.append("Nombre de columna muy similar")
        elif header_score > 0.5:
            reasons.append("Nombre de columna similar")

        if column.data_type == rule.data_type:
            reasons.append("Tipo de datos coincide")

        if column.sample_values:
            valid = sum(
                1 for value in column.sample_values
                if not rule.has_validation or rule.validate(value).is_valid
            )
            if valid == len(column.sample_values):
                reasons.append("Valores de muestra válidos")
            elif valid > len(column.sample_values) / 2:
                reasons.append("Algunos valores de muestra válidos")

        return ", ".join(reasons) if reasons else "Coincidencia general"

    def validate_mappings(self, mappings: Sequence[ColumnMapping]) -> MappingValidation:
        """
        Structural check of a mapping set: required fields mapped, no field
        claimed twice. Unmapped columns only produce a warning.
        """
        errors = []
        warnings = []

        field_counts: Dict[str, int] = {}
        for mapping in mappings:
            if mapping.is_mapped:
                field_counts[mapping.inventory_field] = field_counts.get(mapping.inventory_field, 0) + 1

        for rule in self.rules:
            if rule.required and rule.field not in field_counts:
                errors.append(f"Campo requerido '{rule.field}' no está mapeado")

        for field_name, count in field_counts.items():
            if count > 1:
                errors.append(f"Campo '{field_name}' está mapeado múltiples veces")

        unmapped = sum(1 for mapping in mappings if not mapping.is_mapped)
        if unmapped:
            warnings.append(f"{unmapped} columnas no están mapeadas")

        return MappingValidation(is_valid=not errors, errors=errors, warnings=warnings)

    def get_mapping_statistics(self, mappings: Sequence[ColumnMapping]) -> Dict[str, Any]:
        mapped = [mapping for mapping in mappings if mapping.is_mapped]
        required_fields = {rule.field for rule in self.rules if rule.required}

        return {
            "total_columns": len(mappings),
            "mapped_columns": len(mapped),
            "unmapped_columns": len(mappings) - len(mapped),
            "required_fields_mapped": sum(1 for m in mapped if m.inventory_field in required_fields),
            "total_required_fields": len(required_fields),
            "average_confidence": (
                sum(m.confidence for m in mapped) / len(mapped) if mapped else 0.0
            ),
        }

    def get_rule(self, field_name: str) -> Optional[FieldMappingRule]:
        for rule in self.rules:
            if rule.field == field_name:
                return rule
        return None


def _sample_is_valid(value: str, rule: FieldMappingRule) -> bool:
    if rule.has_validation:
        return rule.validate(value).is_valid
    if rule.data_type == DataType.NUMBER:
        return is_numeric(value)
    if rule.data_type == DataType.BOOLEAN:
        return value.strip().lower() in {"true", "false", "yes", "no", "1", "0", "activo", "inactivo"}
    if rule.data_type == DataType.DATE:
        return is_date(value)
    return True
