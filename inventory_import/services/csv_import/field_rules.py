"""
Field mapping rules for the inventory schema.

Each target field is described by a FieldMappingRule: header patterns used for
fuzzy matching, a relevance weight, the expected data type and a strategy
object that knows how to validate and transform raw cell values.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import DataType


SKU_PATTERN = re.compile(r"^[A-Za-z0-9\-_]+$")
DIGITS_PATTERN = re.compile(r"^[0-9]+$")
TAG_SEPARATORS = re.compile(r"[,;|]")

STATUS_MAP: Dict[str, str] = {
    "active": "active",
    "activo": "active",
    "inactive": "inactive",
    "inactivo": "inactive",
    "discontinued": "discontinued",
    "descontinuado": "discontinued",
}


def parse_decimal(value: Any) -> float:
    """Parse a money/plain number, ignoring thousands separators and '$'."""
    cleaned = str(value).replace(",", "").replace("$", "").strip()
    number = float(cleaned)
    if not math.isfinite(number):
        raise ValueError(f"'{value}' no es un número finito")
    return number


def parse_integer(value: Any) -> int:
    """Parse an integer, accepting integral floats such as '10.0'."""
    number = float(str(value).strip())
    if not number.is_integer():
        raise ValueError(f"'{value}' no es un número entero")
    return int(number)


@dataclass(frozen=True)
class RuleCheck:
    is_valid: bool
    message: Optional[str] = None


class FieldStrategy:
    """
    Validation/transformation capability of a target field.

    Subclasses override validate() and/or transform() and flip the matching
    has_* flag so callers know whether the capability is real.
    """

    has_validation = False
    has_transformation = False

    def validate(self, value: str) -> RuleCheck:
        return RuleCheck(True)

    def transform(self, value: str) -> Any:
        return value


class TextField(FieldStrategy):
    """Free text, optionally required to be non-empty."""

    def __init__(self, required_message: Optional[str] = None):
        self.required_message = required_message
        self.has_validation = required_message is not None

    def validate(self, value: str) -> RuleCheck:
        if self.required_message is None:
            return RuleCheck(True)
        return RuleCheck(len(value.strip()) > 0, self.required_message)


class SkuField(FieldStrategy):
    has_validation = True

    def validate(self, value: str) -> RuleCheck:
        return RuleCheck(
            bool(SKU_PATTERN.match(value.strip())),
            "SKU debe contener solo letras, números, guiones y guiones bajos"
        )


class DecimalField(FieldStrategy):
    """Non-negative amount such as a price or a cost."""

    has_validation = True
    has_transformation = True

    def __init__(self, message: str):
        self.message = message

    def validate(self, value: str) -> RuleCheck:
        try:
            number = parse_decimal(value)
        except ValueError:
            return RuleCheck(False, self.message)
        return RuleCheck(number >= 0, self.message)

    def transform(self, value: str) -> float:
        return parse_decimal(value)


class IntegerField(FieldStrategy):
    """Non-negative integer such as a quantity or a stock level."""

    has_validation = True
    has_transformation = True

    def __init__(self, message: str):
        self.message = message

    def validate(self, value: str) -> RuleCheck:
        try:
            number = parse_integer(value)
        except ValueError:
            return RuleCheck(False, self.message)
        return RuleCheck(number >= 0, self.message)

    def transform(self, value: str) -> int:
        return parse_integer(value)


class StatusField(FieldStrategy):
    has_validation = True
    has_transformation = True

    message = "El estado debe ser: active, inactive, o discontinued"

    def validate(self, value: str) -> RuleCheck:
        return RuleCheck(value.lower().strip() in STATUS_MAP, self.message)

    def transform(self, value: str) -> str:
        normalized = value.lower().strip()
        if normalized not in STATUS_MAP:
            raise ValueError(self.message)
        return STATUS_MAP[normalized]


class BarcodeField(FieldStrategy):
    has_validation = True

    def validate(self, value: str) -> RuleCheck:
        return RuleCheck(
            bool(DIGITS_PATTERN.match(value.strip())),
            "El código de barras debe contener solo números"
        )


class TagsField(FieldStrategy):
    has_transformation = True

    def transform(self, value: str) -> List[str]:
        return [tag.strip() for tag in TAG_SEPARATORS.split(value) if tag.strip()]


@dataclass(frozen=True)
class FieldMappingRule:
    """
    Static, schema-defined rule for one inventory field.

    Attributes:
        field: Inventory field name
        patterns: Header names (English/Spanish) recognised for the field
        weight: Relevance multiplier applied to the match score
        data_type: Expected primitive type
        required: Whether every import must map this field
        strategy: Value-level validation/transformation
    """
    field: str
    patterns: Tuple[str, ...]
    weight: float
    data_type: DataType
    required: bool = False
    strategy: FieldStrategy = FieldStrategy()

    @property
    def has_validation(self) -> bool:
        return self.strategy.has_validation

    @property
    def transformation(self) -> Optional[Callable[[str], Any]]:
        if self.strategy.has_transformation:
            return self.strategy.transform
        return None

    def validate(self, value: str) -> RuleCheck:
        return self.strategy.validate(value)


COLUMN_MAPPING_RULES: List[FieldMappingRule] = [
    FieldMappingRule(
        field="sku",
        patterns=(
            "sku", "codigo", "code", "product_code", "item_code", "id", "product_id",
            "item_id", "reference", "ref", "articulo", "artículo", "cod", "código",
        ),
        weight=1.0,
        data_type=DataType.STRING,
        required=True,
        strategy=SkuField(),
    ),
    FieldMappingRule(
        field="name",
        patterns=(
            "name", "nombre", "producto", "product", "item", "description", "descripcion",
            "descripción", "title", "titulo", "título", "product_name", "item_name",
        ),
        weight=1.0,
        data_type=DataType.STRING,
        required=True,
        strategy=TextField("El nombre del producto es requerido"),
    ),
    FieldMappingRule(
        field="description",
        patterns=(
            "description", "descripcion", "descripción", "details", "detalles",
            "notes", "notas", "comments", "comentarios", "long_description",
        ),
        weight=0.8,
        data_type=DataType.STRING,
        strategy=TextField(),
    ),
    FieldMappingRule(
        field="category",
        patterns=(
            "category", "categoria", "categoría", "type", "tipo", "group", "grupo",
            "class", "clase", "classification", "clasificacion", "clasificación",
        ),
        weight=0.9,
        data_type=DataType.STRING,
        strategy=TextField(),
    ),
    FieldMappingRule(
        field="location",
        patterns=(
            "location", "ubicacion", "ubicación", "place", "lugar", "warehouse",
            "almacen", "almacén", "storage", "almacenamiento", "shelf", "estante",
        ),
        weight=0.8,
        data_type=DataType.STRING,
        strategy=TextField(),
    ),
    FieldMappingRule(
        field="price",
        patterns=(
            "price", "precio", "cost", "costo", "unit_price", "precio_unitario",
            "selling_price", "precio_venta", "retail_price", "precio_retail",
            "list_price", "precio_lista", "value", "valor",
        ),
        weight=0.9,
        data_type=DataType.NUMBER,
        strategy=DecimalField("El precio debe ser un número mayor o igual a 0"),
    ),
    FieldMappingRule(
        field="cost",
        patterns=(
            "cost", "costo", "unit_cost", "costo_unitario", "purchase_price",
            "precio_compra", "wholesale_price", "precio_mayorista", "buy_price",
        ),
        weight=0.8,
        data_type=DataType.NUMBER,
        strategy=DecimalField("El costo debe ser un número mayor o igual a 0"),
    ),
    FieldMappingRule(
        field="quantity",
        patterns=(
            "quantity", "cantidad", "stock", "inventario", "qty", "amount",
            "cant", "inventory", "available", "disponible", "on_hand",
        ),
        weight=0.9,
        data_type=DataType.NUMBER,
        strategy=IntegerField("La cantidad debe ser un número entero mayor o igual a 0"),
    ),
    FieldMappingRule(
        field="min_stock",
        patterns=(
            "min_stock", "stock_minimo", "stock_mínimo", "minimum_stock",
            "min_quantity", "cantidad_minima", "cantidad_mínima", "reorder_point",
            "punto_reorden", "min_level", "nivel_minimo", "nivel_mínimo",
        ),
        weight=0.7,
        data_type=DataType.NUMBER,
        strategy=IntegerField("El stock mínimo debe ser un número entero mayor o igual a 0"),
    ),
    FieldMappingRule(
        field="max_stock",
        patterns=(
            "max_stock", "stock_maximo", "stock_máximo", "maximum_stock",
            "max_quantity", "cantidad_maxima", "cantidad_máxima", "max_level",
            "nivel_maximo", "nivel_máximo", "capacity", "capacidad",
        ),
        weight=0.7,
        data_type=DataType.NUMBER,
        strategy=IntegerField("El stock máximo debe ser un número entero mayor o igual a 0"),
    ),
    FieldMappingRule(
        field="status",
        patterns=(
            "status", "estado", "state", "active", "activo", "inactive", "inactivo",
            "enabled", "habilitado", "disabled", "deshabilitado", "available",
            "disponible", "condition", "condicion", "condición",
        ),
        weight=0.6,
        data_type=DataType.STRING,
        strategy=StatusField(),
    ),
    FieldMappingRule(
        field="barcode",
        patterns=(
            "barcode", "codigo_barras", "código_barras", "ean", "upc", "isbn",
            "gtin", "product_code", "codigo_producto", "código_producto",
        ),
        weight=0.8,
        data_type=DataType.STRING,
        strategy=BarcodeField(),
    ),
    FieldMappingRule(
        field="tags",
        patterns=(
            "tags", "etiquetas", "labels", "keywords", "palabras_clave",
            "categories", "categorias", "categorías", "groups", "grupos",
        ),
        weight=0.6,
        data_type=DataType.STRING,
        strategy=TagsField(),
    ),
    FieldMappingRule(
        field="supplier",
        patterns=(
            "supplier", "proveedor", "vendor", "vendedor", "manufacturer",
            "fabricante", "brand", "marca", "company", "empresa",
        ),
        weight=0.7,
        data_type=DataType.STRING,
        strategy=TextField(),
    ),
    FieldMappingRule(
        field="notes",
        patterns=(
            "notes", "notas", "comments", "comentarios", "remarks", "observaciones",
            "additional_info", "informacion_adicional", "información_adicional",
        ),
        weight=0.5,
        data_type=DataType.STRING,
        strategy=TextField(),
    ),
]

# Placeholder target of columns that no rule claimed
UNMAPPED_FIELD = "notes"
