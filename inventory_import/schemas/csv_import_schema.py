from typing import List, Optional
from pydantic import BaseModel, Field


class ColumnMappingSchema(BaseModel):
    """Mapping of one CSV column as edited by the user"""
    csv_column: str = Field(..., min_length=1)
    inventory_field: str = Field(..., min_length=1)
    is_mapped: bool = True


class UpdateMappingsSchema(BaseModel):
    mappings: List[ColumnMappingSchema]


class ImportSessionResponseSchema(BaseModel):
    id: str
    file_name: str
    file_size: int
    status: str
    progress: dict
    columns: list
    total_rows: int
    mappings: list
    statistics: Optional[dict] = None
    result: Optional[dict] = None
    created_at: str
    updated_at: str

    model_config = {"extra": "ignore"}
