from typing import List
from pydantic import BaseModel, Field


class InventoryItemCreateSchema(BaseModel):
    """
        Payload sent to the inventory API to create one item.

        Built from a validated CSV record once category and location names have
        been resolved to ids.

        Attributes:
            sku (str): Unique product code, letters, digits, '-' and '_'.
            name (str): Product name.
            category_id / location_id (str): Resolved ids, empty when nothing could be resolved.
            unit_price / cost (float): Non-negative amounts.
            quantity / min_stock / max_stock (int): Non-negative stock levels.
            status (str): active, inactive or discontinued.
    """
    sku: str = Field(..., max_length=50)
    name: str = Field(..., max_length=200)
    description: str = ""
    category_id: str = ""
    location_id: str = ""
    unit_price: float = Field(default=0, ge=0)
    cost: float = Field(default=0, ge=0)
    quantity: int = Field(default=0, ge=0)
    min_stock: int = Field(default=0, ge=0)
    max_stock: int = Field(default=1000, ge=0)
    status: str = "active"
    barcode: str = ""
    tags: List[str] = Field(default_factory=list)
    supplier: str = ""
    notes: str = ""

    model_config = {"extra": "ignore"}


class CategoryCreateSchema(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = "Categoría creada automáticamente desde importación CSV"
    color: str = "#3b82f6"
    isActive: bool = True
    sortOrder: int = 999


class LocationCreateSchema(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = "Ubicación creada automáticamente desde importación CSV"
    type: str = "storage"
    isActive: bool = True
