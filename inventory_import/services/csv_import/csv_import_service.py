"""
CSV Import Service - orchestrates one import session.

Sequences parser, mapper, validator and engine over an ImportSession and keeps
its status and progress current. Stages called out of order raise
SessionStateException.
"""
from __future__ import annotations

import csv
import io
import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from inventory_import.core.exceptions import (
    CSVParseException,
    ExceptionFactory,
)
from inventory_import.services.interfaces.inventory_api_interface import IInventoryApi

from .column_mapper import ColumnMapper, ColumnSuggestions
from .config import CSVImportConfig, DEFAULT_CSV_IMPORT_CONFIG, SUPPORTED_EXTENSIONS, SUPPORTED_MIME_TYPES
from .csv_parser import CSVParser, format_file_size
from .data_validator import DataValidator
from .import_engine import CANCELLED_MESSAGE, ImportEngine
from .models import (
    ColumnMapping,
    CSVImportData,
    ImportPreview,
    ImportProgress,
    ImportResult,
    ImportSession,
    ImportSessionStatus,
)

logger = logging.getLogger(__name__)


NO_SESSION = "No hay una sesión de importación activa"
EXPORT_HEADER = ["Tipo", "Fila", "Campo", "Valor", "Mensaje", "Sugerencia"]


class CSVImportService:
    """
    Orchestrator of a single import session.

    Args:
        api: Inventory API used by the import engine
        config: Pipeline configuration
    """

    def __init__(self, api: IInventoryApi, config: CSVImportConfig = DEFAULT_CSV_IMPORT_CONFIG):
        self.api = api
        self.current_session: Optional[ImportSession] = None
        self._build_components(config)

    def _build_components(self, config: CSVImportConfig) -> None:
        self.config = config
        self.parser = CSVParser(config)
        self.mapper = ColumnMapper(config.validation_rules, config.case_sensitive_mapping)
        self.validator = DataValidator(config.validation_rules)
        self.engine = ImportEngine(self.api, config, self._handle_progress)

    def start_import_session(self, file_name: str, content: bytes) -> ImportSession:
        """
        Validate the uploaded file and open a new session (status uploading).

        Raises:
            ValidationException: With every file-level reason
        """
        validation = self.parser.validate_file(file_name, len(content))
        if not validation.is_valid:
            logger.warning(f"Rejected file '{file_name}': {validation.errors}")
            raise ExceptionFactory.invalid_file(file_name, validation.errors)

        session = ImportSession(
            id=self._generate_session_id(),
            file_name=file_name,
            file_size=len(content),
            content=content,
            config=self.config,
            progress=ImportProgress(current_operation="Cargando archivo..."),
        )
        self.current_session = session
        logger.info(f"Import session {session.id} started for '{file_name}' ({len(content)} bytes)")
        return session

    def parse_file(self) -> CSVImportData:
        session = self._require_session("parse_file")

        self._set_status(ImportSessionStatus.PARSING)
        self._update_progress("Analizando archivo CSV...", 0)

        try:
            data = self.parser.parse_file(session.content, session.file_name)
        except CSVParseException:
            self._set_status(ImportSessionStatus.ERROR)
            raise

        session.data = data
        session.progress.total_rows = data.total_rows
        self._set_status(ImportSessionStatus.MAPPING)
        self._update_progress("Archivo analizado correctamente", 25)
        return data

    def auto_map_columns(self) -> List[ColumnMapping]:
        session = self._require_session("auto_map_columns")
        if session.data is None:
            raise ExceptionFactory.missing_prerequisite("auto_map_columns", "No hay datos CSV para mapear")

        self._update_progress("Mapeando columnas automáticamente...", 30)
        mappings = self.mapper.auto_map_columns(session.data.columns)

        session.mappings = mappings
        self._set_status(ImportSessionStatus.PREVIEW)
        self._update_progress("Columnas mapeadas correctamente", 50)
        return mappings

    def update_mappings(self, mappings: Sequence[ColumnMapping]) -> List[ColumnMapping]:
        """
        Replace the session mappings after a structural check.

        Required flag and transformation are taken from the field rules, so
        callers only need to supply column, field and is_mapped.

        Raises:
            ValidationException: Unknown fields, missing required fields or
                duplicate fields
        """
        session = self._require_session("update_mappings")

        completed = []
        unknown = []
        for mapping in mappings:
            rule = self.mapper.get_rule(mapping.inventory_field)
            if rule is None:
                if mapping.is_mapped:
                    unknown.append(f"Campo '{mapping.inventory_field}' no existe")
                completed.append(mapping)
                continue
            completed.append(ColumnMapping(
                csv_column=mapping.csv_column,
                inventory_field=mapping.inventory_field,
                is_required=rule.required if mapping.is_mapped else False,
                is_mapped=mapping.is_mapped,
                confidence=mapping.confidence,
                transformation=(mapping.transformation or rule.transformation) if mapping.is_mapped else None,
            ))

        validation = self.mapper.validate_mappings(completed)
        errors = unknown + validation.errors
        if errors:
            raise ExceptionFactory.invalid_mappings(errors)

        session.mappings = completed
        # a preview built on the old mappings is stale
        session.preview = None
        self._update_progress("Mapeos actualizados", 50)
        return completed

    def generate_preview(self) -> ImportPreview:
        session = self._require_session("generate_preview")
        if session.data is None or session.mappings is None:
            raise ExceptionFactory.missing_prerequisite(
                "generate_preview", "Datos o mapeos faltantes para generar vista previa"
            )

        self._update_progress("Generando vista previa...", 60)
        preview = self.validator.validate_data(session.data, session.mappings, self.config.default_values)

        session.preview = preview
        self._update_progress("Vista previa generada", 70)
        return preview

    async def start_import(self) -> ImportResult:
        session = self._require_session("start_import")
        if session.preview is None:
            raise ExceptionFactory.missing_prerequisite("start_import", "No hay vista previa para importar")
        if session.status == ImportSessionStatus.IMPORTING:
            raise ExceptionFactory.missing_prerequisite("start_import", "La importación ya está en curso")

        self._set_status(ImportSessionStatus.IMPORTING)
        self._update_progress("Iniciando importación...", 75)

        try:
            result = await self.engine.import_data(session.preview, self.config.batch_size)
        except Exception as e:
            logger.exception(f"Import session {session.id} failed")
            self._set_status(ImportSessionStatus.ERROR)
            raise ExceptionFactory.import_failed(session.id, str(e)) from e

        session.result = result
        self._set_status(ImportSessionStatus.COMPLETED if result.success else ImportSessionStatus.ERROR)
        self._update_progress(CANCELLED_MESSAGE if result.cancelled else "Importación completada", 100)
        return result

    def get_current_session(self) -> Optional[ImportSession]:
        return self.current_session

    def get_session_statistics(self) -> Optional[Dict[str, Any]]:
        session = self.current_session
        if session is None:
            return None

        if session.mappings:
            mapping_stats = self.mapper.get_mapping_statistics(session.mappings)
        else:
            mapping_stats = self.mapper.get_mapping_statistics([])

        if session.preview is not None:
            preview_stats = session.preview.statistics.to_dict()
        else:
            preview_stats = {"total_rows": 0, "valid_rows": 0, "error_rows": 0, "warning_rows": 0}

        return {
            "file_stats": {
                "name": session.file_name,
                "size": format_file_size(session.file_size),
                "rows": session.data.total_rows if session.data else 0,
                "columns": len(session.data.columns) if session.data else 0,
            },
            "mapping_stats": mapping_stats,
            "preview_stats": preview_stats,
            "import_stats": self.engine.get_import_statistics(session.result) if session.result else None,
        }

    def get_mapping_suggestions(self) -> List[ColumnSuggestions]:
        session = self.current_session
        if session is None or session.data is None or session.mappings is None:
            return []
        return self.mapper.suggest_mappings(session.data.columns, session.mappings)

    def reset_session(self) -> None:
        if self.current_session is not None:
            logger.info(f"Import session {self.current_session.id} reset")
        self.current_session = None

    def cancel_import(self) -> None:
        """
        Request cancellation. A running import stops at its next batch or
        chunk boundary and the session ends in error. The status stays
        importing until the engine returns, so no second run can start
        over the one being cancelled.
        """
        session = self.current_session
        if session is None:
            return
        self.engine.cancel()
        if session.status != ImportSessionStatus.IMPORTING:
            self._set_status(ImportSessionStatus.ERROR)
        self._update_progress(CANCELLED_MESSAGE, 0)

    def export_results(self, format: str = "json") -> str:
        """
        Serialise the session result.

        Args:
            format: "json" for the full dump, "csv" for errors and warnings only
        """
        session = self.current_session
        if session is None or session.result is None:
            raise ExceptionFactory.missing_prerequisite("export_results", "No hay resultados para exportar")

        result = session.result
        if format == "csv":
            return self._export_csv(result)
        if format != "json":
            raise ValueError(f"Unsupported export format: {format}")

        return json.dumps({
            "session": {
                "id": session.id,
                "file_name": session.file_name,
                "created_at": session.created_at.isoformat(),
                "completed_at": datetime.now().isoformat(),
            },
            "summary": {
                "success": result.success,
                "imported_count": result.imported_count,
                "error_count": result.error_count,
                "warning_count": result.warning_count,
                "duration": result.duration,
                "cancelled": result.cancelled,
            },
            "errors": [error.to_dict() for error in result.errors],
            "warnings": [warning.to_dict() for warning in result.warnings],
            "failed_items": [item.to_dict() for item in result.failed_items],
        }, indent=2, ensure_ascii=False, default=str)

    @staticmethod
    def _export_csv(result: ImportResult) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_HEADER)
        for error in result.errors:
            writer.writerow(["Error", error.row, error.field, error.value, error.message, error.suggestion or ""])
        for warning in result.warnings:
            writer.writerow([
                "Advertencia", warning.row, warning.field, warning.value, warning.message, warning.suggestion or ""
            ])
        return buffer.getvalue().rstrip("\n")

    def get_supported_formats(self) -> Dict[str, Any]:
        return {
            "extensions": list(SUPPORTED_EXTENSIONS),
            "mime_types": list(SUPPORTED_MIME_TYPES),
            "max_size": format_file_size(self.config.max_file_size),
        }

    def get_configuration(self) -> CSVImportConfig:
        return self.config

    def update_configuration(self, **changes: Any) -> CSVImportConfig:
        """Apply configuration changes and rebuild every pipeline component"""
        config = self.config.merged(**changes)
        self._build_components(config)
        if self.current_session is not None:
            self.current_session.config = config
        logger.info(f"CSV import configuration updated: {sorted(changes)}")
        return config

    def _require_session(self, stage: str) -> ImportSession:
        if self.current_session is None:
            raise ExceptionFactory.missing_prerequisite(stage, NO_SESSION)
        return self.current_session

    def _set_status(self, status: ImportSessionStatus) -> None:
        if self.current_session is not None:
            self.current_session.status = status
            self.current_session.updated_at = datetime.now()

    def _update_progress(self, operation: str, percentage: int) -> None:
        if self.current_session is not None:
            progress = self.current_session.progress
            progress.current_operation = operation
            progress.percentage = percentage
            progress.is_complete = percentage >= 100

    def _handle_progress(self, progress: ImportProgress) -> None:
        if self.current_session is not None:
            self.current_session.progress = progress

    @staticmethod
    def _generate_session_id() -> str:
        return f"import_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
