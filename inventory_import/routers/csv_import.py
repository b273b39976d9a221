"""
CSV Import Router

Endpoints driving one inventory import session per id: upload, mapping,
preview, import, cancellation and export.
"""
from typing import Dict

from fastapi import APIRouter, Depends, UploadFile, File, Query, Path, status
from fastapi.responses import Response

from inventory_import.core.exceptions import ExceptionFactory
from inventory_import.schemas.csv_import_schema import ImportSessionResponseSchema, UpdateMappingsSchema
from inventory_import.services.csv_import.config import CSVImportConfig
from inventory_import.services.csv_import.csv_import_service import CSVImportService
from inventory_import.services.csv_import.models import ColumnMapping
from inventory_import.services.external.inventory_api_client import InventoryApiClient
from inventory_import.services.interfaces.inventory_api_interface import IInventoryApi


router = APIRouter(
    prefix="/api/v1/inventory/import",
    tags=["CSV Import"]
)


class ImportSessionRegistry:
    """In-process store of the services owning each open session"""

    def __init__(self):
        self._services: Dict[str, CSVImportService] = {}

    def add(self, service: CSVImportService) -> str:
        session_id = service.get_current_session().id
        self._services[session_id] = service
        return session_id

    def get(self, session_id: str) -> CSVImportService:
        service = self._services.get(session_id)
        if service is None:
            raise ExceptionFactory.session_not_found(session_id)
        return service

    def remove(self, session_id: str) -> None:
        service = self.get(session_id)
        service.reset_session()
        del self._services[session_id]


_registry = ImportSessionRegistry()


def get_session_registry() -> ImportSessionRegistry:
    return _registry


def get_inventory_api() -> IInventoryApi:
    return InventoryApiClient()


def get_import_config() -> CSVImportConfig:
    return CSVImportConfig.from_settings()


@router.get("/formats", status_code=status.HTTP_200_OK)
async def get_supported_formats(
    api: IInventoryApi = Depends(get_inventory_api),
    config: CSVImportConfig = Depends(get_import_config)
):
    """Accepted extensions, mime types and maximum size"""
    return CSVImportService(api, config).get_supported_formats()


@router.post(
    "/sessions",
    status_code=status.HTTP_201_CREATED,
    response_model=ImportSessionResponseSchema,
    response_description="Import session created, file parsed and columns mapped"
)
async def create_import_session(
    file: UploadFile = File(..., description="CSV, TXT or TSV file to import"),
    api: IInventoryApi = Depends(get_inventory_api),
    config: CSVImportConfig = Depends(get_import_config),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    """
    Upload a file and run the first stages of the import.

    **Workflow**:
    1. File validation (extension, size, empty file)
    2. Parsing with delimiter, header and column type detection
    3. Automatic column mapping
    """
    content = await file.read()

    service = CSVImportService(api, config)
    service.start_import_session(file.filename or "", content)
    service.parse_file()
    service.auto_map_columns()

    registry.add(service)
    return service.get_current_session().to_dict()


@router.get("/sessions/{session_id}", status_code=status.HTTP_200_OK)
async def get_import_session(
    session_id: str = Path(..., description="Import session id"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    service = registry.get(session_id)
    return {
        "session": service.get_current_session().to_dict(),
        "statistics": service.get_session_statistics(),
    }


@router.get("/sessions/{session_id}/suggestions", status_code=status.HTTP_200_OK)
async def get_mapping_suggestions(
    session_id: str = Path(..., description="Import session id"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    service = registry.get(session_id)
    return [suggestion.to_dict() for suggestion in service.get_mapping_suggestions()]


@router.put("/sessions/{session_id}/mappings", status_code=status.HTTP_200_OK)
async def update_mappings(
    body: UpdateMappingsSchema,
    session_id: str = Path(..., description="Import session id"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    """Replace the column mappings, required fields must stay mapped exactly once"""
    service = registry.get(session_id)
    mappings = service.update_mappings([
        ColumnMapping(
            csv_column=item.csv_column,
            inventory_field=item.inventory_field,
            is_required=False,
            is_mapped=item.is_mapped,
            confidence=1.0 if item.is_mapped else 0.0,
        )
        for item in body.mappings
    ])
    return [mapping.to_dict() for mapping in mappings]


@router.post("/sessions/{session_id}/preview", status_code=status.HTTP_200_OK)
async def generate_preview(
    session_id: str = Path(..., description="Import session id"),
    limit: int = Query(50, ge=0, le=1000, description="Records returned in mapped_data"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    service = registry.get(session_id)
    return service.generate_preview().to_dict(limit=limit)


@router.post("/sessions/{session_id}/import", status_code=status.HTTP_200_OK)
async def start_import(
    session_id: str = Path(..., description="Import session id"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    """Import the previewed records; row failures are reported in the result"""
    service = registry.get(session_id)
    result = await service.start_import()
    return result.to_dict()


@router.post(
    "/sessions/{session_id}/cancel",
    status_code=status.HTTP_200_OK,
    response_model=ImportSessionResponseSchema
)
async def cancel_import(
    session_id: str = Path(..., description="Import session id"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    service = registry.get(session_id)
    service.cancel_import()
    return service.get_current_session().to_dict()


@router.get("/sessions/{session_id}/export", status_code=status.HTTP_200_OK)
async def export_results(
    session_id: str = Path(..., description="Import session id"),
    format: str = Query("json", pattern="^(json|csv)$", description="json or csv"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    service = registry.get(session_id)
    content = service.export_results(format)
    media_type = "text/csv" if format == "csv" else "application/json"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={session_id}.{format}"}
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_import_session(
    session_id: str = Path(..., description="Import session id"),
    registry: ImportSessionRegistry = Depends(get_session_registry)
):
    registry.remove(session_id)
