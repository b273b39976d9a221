"""
Unit tests for CSVImportService (session orchestration)
"""
import csv
import io
import json
import re

import pytest

from inventory_import.core.exceptions import (
    CSVParseException,
    InfrastructureException,
    SessionStateException,
    ValidationException,
)
from inventory_import.services.csv_import.csv_import_service import CSVImportService, EXPORT_HEADER
from inventory_import.services.csv_import.import_engine import CANCELLED_MESSAGE
from inventory_import.services.csv_import.models import ColumnMapping, ImportSessionStatus


CSV_CONTENT = (
    "SKU,Nombre,Precio,Cantidad\n"
    "ABC-1,Widget,19.99,10\n"
    "ABC-2,Tuerca,-5,3\n"
    "ABC-3,X,2.50,7\n"
).encode("utf-8")


@pytest.fixture
def service(fake_api, fast_config):
    return CSVImportService(fake_api, fast_config)


def run_until_preview(service, content=CSV_CONTENT, file_name="items.csv"):
    service.start_import_session(file_name, content)
    service.parse_file()
    service.auto_map_columns()
    return service.generate_preview()


# ============================================================================
# Session lifecycle
# ============================================================================

class TestSessionFlow:

    def test_start_session(self, service):
        session = service.start_import_session("items.csv", CSV_CONTENT)

        assert re.match(r"^import_\d+_[0-9a-f]{9}$", session.id)
        assert session.status == ImportSessionStatus.UPLOADING
        assert session.file_size == len(CSV_CONTENT)
        assert service.get_current_session() is session

    def test_stages_move_status_and_progress(self, service):
        session = service.start_import_session("items.csv", CSV_CONTENT)

        data = service.parse_file()
        assert session.status == ImportSessionStatus.MAPPING
        assert session.progress.percentage == 25
        assert data.total_rows == 3

        mappings = service.auto_map_columns()
        assert session.status == ImportSessionStatus.PREVIEW
        assert session.progress.percentage == 50
        assert [m.inventory_field for m in mappings] == ["sku", "name", "price", "quantity"]

        preview = service.generate_preview()
        assert session.progress.percentage == 70
        assert [record.row for record in preview.mapped_data] == [1, 3]
        assert [record.row for record in preview.rejected_data] == [2]

    @pytest.mark.asyncio
    async def test_full_import(self, service, fake_api):
        run_until_preview(service)

        result = await service.start_import()

        session = service.get_current_session()
        assert session.result is result
        assert result.imported_count == 2
        assert result.error_count == 1
        assert [item["sku"] for item in fake_api.items] == ["ABC-1", "ABC-3"]
        # a failed row ends the session in error
        assert session.status == ImportSessionStatus.ERROR
        assert session.progress.percentage == 100
        assert session.progress.is_complete is True

    @pytest.mark.asyncio
    async def test_clean_import_completes(self, service):
        run_until_preview(service, b"SKU,Nombre,Cantidad\nA-1,Widget,10\nA-2,Tuerca,3\n")

        result = await service.start_import()

        assert result.success is True
        assert service.get_current_session().status == ImportSessionStatus.COMPLETED

    def test_invalid_file_is_rejected(self, service):
        with pytest.raises(ValidationException) as exc_info:
            service.start_import_session("items.xlsx", b"")

        assert exc_info.value.error_code == "INVALID_FILE"
        assert "El archivo está vacío" in exc_info.value.details["reasons"]
        assert service.get_current_session() is None

    def test_parse_error_sets_error_status(self, service):
        service.start_import_session("items.csv", b"\n \n")

        with pytest.raises(CSVParseException):
            service.parse_file()

        assert service.get_current_session().status == ImportSessionStatus.ERROR

    def test_reset_session(self, service):
        service.start_import_session("items.csv", CSV_CONTENT)

        service.reset_session()

        assert service.get_current_session() is None
        assert service.get_session_statistics() is None


class TestOutOfOrderCalls:

    def test_parse_without_session(self, service):
        with pytest.raises(SessionStateException) as exc_info:
            service.parse_file()

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "IMPORT_SESSION_STATE"

    def test_map_before_parse(self, service):
        service.start_import_session("items.csv", CSV_CONTENT)

        with pytest.raises(SessionStateException):
            service.auto_map_columns()

    def test_preview_before_mapping(self, service):
        service.start_import_session("items.csv", CSV_CONTENT)
        service.parse_file()

        with pytest.raises(SessionStateException):
            service.generate_preview()

    @pytest.mark.asyncio
    async def test_import_before_preview(self, service):
        service.start_import_session("items.csv", CSV_CONTENT)
        service.parse_file()
        service.auto_map_columns()

        with pytest.raises(SessionStateException):
            await service.start_import()

    def test_export_before_import(self, service):
        run_until_preview(service)

        with pytest.raises(SessionStateException):
            service.export_results("json")


# ============================================================================
# Mappings
# ============================================================================

class TestUpdateMappings:

    def test_missing_required_field(self, service):
        run_until_preview(service)

        with pytest.raises(ValidationException) as exc_info:
            service.update_mappings([ColumnMapping("SKU", "sku", False, True, 1.0)])

        assert exc_info.value.error_code == "INVALID_MAPPING"
        assert "Campo requerido 'name' no está mapeado" in exc_info.value.details["errors"]

    def test_unknown_field(self, service):
        run_until_preview(service)

        with pytest.raises(ValidationException) as exc_info:
            service.update_mappings([
                ColumnMapping("SKU", "sku", False, True, 1.0),
                ColumnMapping("Nombre", "name", False, True, 1.0),
                ColumnMapping("Precio", "foo", False, True, 1.0),
            ])

        assert "Campo 'foo' no existe" in exc_info.value.details["errors"]

    def test_valid_update_completes_rules_and_drops_preview(self, service):
        run_until_preview(service)

        mappings = service.update_mappings([
            ColumnMapping("SKU", "sku", False, True, 1.0),
            ColumnMapping("Nombre", "name", False, True, 1.0),
            ColumnMapping("Precio", "cost", False, True, 1.0),
            ColumnMapping("Cantidad", "notes", False, False, 0.0),
        ])

        session = service.get_current_session()
        assert session.mappings == mappings
        assert session.preview is None
        assert mappings[0].is_required is True
        assert mappings[2].transformation is not None
        assert mappings[3].transformation is None

        preview = service.generate_preview()
        assert preview.mapped_data[0].data["cost"] == pytest.approx(19.99)
        assert preview.statistics.unmapped_fields == 1

    def test_suggestions(self, service):
        assert service.get_mapping_suggestions() == []

        run_until_preview(service)
        service.update_mappings([
            ColumnMapping("SKU", "sku", False, True, 1.0),
            ColumnMapping("Nombre", "name", False, True, 1.0),
            ColumnMapping("Precio", "price", False, True, 1.0),
            ColumnMapping("Cantidad", "notes", False, False, 0.0),
        ])

        suggestions = service.get_mapping_suggestions()
        assert [s.column for s in suggestions] == ["Cantidad"]
        assert suggestions[0].suggestions[0].field == "quantity"


# ============================================================================
# Export
# ============================================================================

class TestExport:

    @pytest.mark.asyncio
    async def test_json_export_accounts_for_every_row(self, service):
        preview = run_until_preview(service)
        await service.start_import()

        exported = json.loads(service.export_results("json"))

        summary = exported["summary"]
        assert summary["imported_count"] + summary["error_count"] == \
            len(preview.mapped_data) + len(preview.rejected_data)
        assert summary["success"] is False
        assert summary["warning_count"] == 1
        assert exported["session"]["file_name"] == "items.csv"
        assert exported["failed_items"][0]["row"] == 2
        assert exported["errors"][0]["field"] == "price"

    @pytest.mark.asyncio
    async def test_csv_export(self, service):
        run_until_preview(service)
        await service.start_import()

        content = service.export_results("csv")

        lines = content.split("\n")
        assert lines[0] == '"Tipo","Fila","Campo","Valor","Mensaje","Sugerencia"'
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[0] == EXPORT_HEADER
        assert [row[0] for row in rows[1:]] == ["Error", "Advertencia"]
        assert rows[1][1:4] == ["2", "price", "-5"]
        assert rows[2][4] == "El nombre es muy corto"
        assert not content.endswith("\n")

    @pytest.mark.asyncio
    async def test_unsupported_format(self, service):
        run_until_preview(service)
        await service.start_import()

        with pytest.raises(ValueError):
            service.export_results("xml")


# ============================================================================
# Cancellation, statistics and configuration
# ============================================================================

def test_cancel_import(service):
    service.cancel_import()

    run_until_preview(service)
    service.cancel_import()

    session = service.get_current_session()
    assert session.status == ImportSessionStatus.ERROR
    assert session.progress.current_operation == CANCELLED_MESSAGE
    assert service.engine.is_cancelled is True


@pytest.mark.asyncio
async def test_cancel_during_import_keeps_session_importing(service):
    run_until_preview(service)
    statuses = []

    def on_progress(progress):
        service.cancel_import()
        statuses.append(service.get_current_session().status)

    service.engine.on_progress = on_progress

    result = await service.start_import()

    assert result.cancelled is True
    assert result.imported_count == 0
    assert set(statuses) == {ImportSessionStatus.IMPORTING}
    assert service.get_current_session().status == ImportSessionStatus.ERROR
    assert service.get_current_session().progress.current_operation == CANCELLED_MESSAGE


@pytest.mark.asyncio
async def test_session_statistics(service):
    run_until_preview(service)
    await service.start_import()

    stats = service.get_session_statistics()

    assert stats["file_stats"]["name"] == "items.csv"
    assert stats["file_stats"]["rows"] == 3
    assert stats["file_stats"]["columns"] == 4
    assert stats["mapping_stats"]["mapped_columns"] == 4
    assert stats["preview_stats"]["error_rows"] == 1
    assert stats["import_stats"]["error_rate"] == pytest.approx(100 / 3)


def test_statistics_before_preview(service):
    service.start_import_session("items.csv", CSV_CONTENT)

    stats = service.get_session_statistics()

    assert stats["preview_stats"]["total_rows"] == 0
    assert stats["mapping_stats"]["total_columns"] == 0
    assert stats["import_stats"] is None


def test_supported_formats(service):
    formats = service.get_supported_formats()

    assert formats["extensions"] == [".csv", ".txt", ".tsv"]
    assert "text/csv" in formats["mime_types"]
    assert formats["max_size"] == "10 MB"


def test_update_configuration_rebuilds_components(service):
    previous_parser = service.parser

    config = service.update_configuration(batch_size=10, case_sensitive_mapping=True)

    assert config.batch_size == 10
    assert service.get_configuration() is config
    assert service.parser is not previous_parser
    assert service.mapper.case_sensitive is True
    assert service.engine.config is config


def test_update_configuration_rejects_unknown_keys(service):
    with pytest.raises(ValueError):
        service.update_configuration(nope=1)


@pytest.mark.asyncio
async def test_unexpected_engine_failure(service, monkeypatch):
    run_until_preview(service)

    async def broken_import(preview, batch_size=None):
        raise RuntimeError("engine down")

    monkeypatch.setattr(service.engine, "import_data", broken_import)

    with pytest.raises(InfrastructureException) as exc_info:
        await service.start_import()

    assert exc_info.value.error_code == "IMPORT_FAILED"
    assert exc_info.value.status_code == 500
    assert service.get_current_session().status == ImportSessionStatus.ERROR
