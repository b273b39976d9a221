"""
Unit tests for ImportEngine and ReferenceResolver
"""
import random

import pytest

from inventory_import.services.csv_import.import_engine import (
    CANCELLED_MESSAGE,
    ImportEngine,
    VALIDATION_FAILED_MESSAGE,
)
from inventory_import.services.csv_import.models import (
    ImportPreview,
    ImportResult,
    ImportRowError,
    ImportRowWarning,
    ImportStatistics,
    ValidatedRecord,
)
from inventory_import.services.csv_import.reference_resolver import (
    CATEGORY_COLORS,
    DEFAULT_CATEGORY_HINTS,
    ReferenceResolver,
    pick_default_id,
)


def make_preview(records, rejected=(), errors=(), warnings=()):
    total = len(records) + len(rejected)
    return ImportPreview(
        mapped_data=list(records),
        rejected_data=list(rejected),
        errors=list(errors),
        warnings=list(warnings),
        statistics=ImportStatistics(total, len(records), len(rejected), 0, 2, 0, 1),
    )


def make_records(count, **extra):
    return [
        ValidatedRecord(row=i, data={"sku": f"SKU-{i}", "name": f"Item {i}", **extra})
        for i in range(1, count + 1)
    ]


# ============================================================================
# End-to-end through the pipeline stages
# ============================================================================

@pytest.mark.asyncio
async def test_single_row_is_imported_with_default_references(parser, mapper, validator, fake_api, fast_config):
    data = parser.parse_text("SKU,Nombre,Precio,Cantidad\nABC-1,Widget,19.99,10\n")
    mappings = mapper.auto_map_columns(data.columns)
    preview = validator.validate_data(data, mappings, fast_config.default_values)
    engine = ImportEngine(fake_api, fast_config)

    result = await engine.import_data(preview)

    assert result.success is True
    assert result.imported_count == 1
    assert result.error_count == 0
    assert result.cancelled is False
    payload = fake_api.items[0]
    assert payload["sku"] == "ABC-1"
    assert payload["name"] == "Widget"
    assert payload["unit_price"] == pytest.approx(19.99)
    assert payload["quantity"] == 10
    assert payload["category_id"] == "cat-general"
    assert payload["location_id"] == "loc-main"
    assert result.imported_items[0]["id"] == payload["id"]
    assert result.imported_items[0]["sku"] == "ABC-1"


@pytest.mark.asyncio
async def test_transformation_error_row_is_never_sent(parser, mapper, validator, fake_api, fast_config):
    data = parser.parse_text("SKU,Nombre,Cantidad\nA-1,Tornillo,abc\nA-2,Tuerca,5\n")
    mappings = mapper.auto_map_columns(data.columns)
    preview = validator.validate_data(data, mappings, fast_config.default_values)

    result = await ImportEngine(fake_api, fast_config).import_data(preview)

    assert [item["sku"] for item in fake_api.items] == ["A-2"]
    assert result.imported_count == 1
    assert result.error_count == 1
    assert result.failed_items[0].row == 1
    assert result.failed_items[0].error == VALIDATION_FAILED_MESSAGE
    assert result.success is False


# ============================================================================
# Batching and progress
# ============================================================================

@pytest.mark.asyncio
async def test_progress_is_reported_per_batch(fake_api, fast_config):
    events = []
    engine = ImportEngine(fake_api, fast_config, on_progress=events.append)

    result = await engine.import_data(make_preview(make_records(12)), batch_size=5)

    assert result.imported_count == 12
    assert [event.percentage for event in events] == [0, 42, 83, 100]
    assert [event.current_operation for event in events[:3]] == [
        "Procesando lote 1 de 3", "Procesando lote 2 de 3", "Procesando lote 3 de 3"
    ]
    assert events[-1].is_complete is True
    assert events[-1].is_error is False


@pytest.mark.asyncio
async def test_concurrency_is_bounded_by_chunk_size(fake_api, fast_config):
    engine = ImportEngine(fake_api, fast_config)

    result = await engine.import_data(make_preview(make_records(12)))

    assert result.imported_count == 12
    assert 1 < fake_api.max_in_flight <= fast_config.chunk_size


@pytest.mark.asyncio
async def test_empty_preview(fake_api, fast_config):
    events = []

    result = await ImportEngine(fake_api, fast_config, events.append).import_data(make_preview([]))

    assert result.success is True
    assert result.imported_count == 0
    assert [event.percentage for event in events] == [100]


# ============================================================================
# Failures
# ============================================================================

@pytest.mark.asyncio
async def test_rejected_rows_are_failed_without_calling_the_api(fake_api, fast_config):
    rejected = ValidatedRecord(row=2, data={"sku": "BAD", "name": "Roto"})
    error = ImportRowError(2, "price", "-1", "El precio no puede ser negativo")
    warning = ImportRowWarning(1, "name", "X", "El nombre es muy corto")
    preview = make_preview(make_records(1), rejected=[rejected], errors=[error], warnings=[warning])

    result = await ImportEngine(fake_api, fast_config).import_data(preview)

    assert [item["sku"] for item in fake_api.items] == ["SKU-1"]
    assert result.imported_count == 1
    assert result.error_count == 1
    assert result.warning_count == 1
    assert result.errors == [error]
    assert result.failed_items[0].data == {"sku": "BAD", "name": "Roto"}
    assert result.failed_items[0].error == VALIDATION_FAILED_MESSAGE
    assert result.success is False


@pytest.mark.asyncio
async def test_row_in_both_lists_is_only_rejected(fake_api, fast_config):
    record = make_records(1)[0]

    result = await ImportEngine(fake_api, fast_config).import_data(make_preview([record], rejected=[record]))

    assert fake_api.items == []
    assert result.imported_count == 0
    assert result.error_count == 1


@pytest.mark.asyncio
async def test_failing_rows_do_not_abort_siblings(fake_api, fast_config):
    fake_api.failing_skus = {"SKU-2": "SKU duplicado"}
    fake_api.connection_error_skus = {"SKU-3"}
    fake_api.unexpected_error_skus = {"SKU-4"}

    result = await ImportEngine(fake_api, fast_config).import_data(make_preview(make_records(5)))

    assert result.imported_count == 2
    assert result.error_count == 3
    assert result.processed_count == 5
    assert result.success is False
    messages = {item.row: item.error for item in result.failed_items}
    assert messages == {
        2: "Error del servidor: SKU duplicado",
        3: "Error de conexión: connection refused",
        4: "Error inesperado: boom",
    }
    assert sorted(error.row for error in result.errors) == [2, 3, 4]
    assert sorted(item["sku"] for item in result.imported_items) == ["SKU-1", "SKU-5"]


@pytest.mark.asyncio
async def test_cancel_stops_before_next_batch(fake_api, fast_config):
    events = []
    engine = ImportEngine(fake_api, fast_config)

    def on_progress(progress):
        events.append(progress)
        if len(events) == 2:
            engine.cancel()

    engine.on_progress = on_progress

    result = await engine.import_data(make_preview(make_records(12)), batch_size=5)

    assert result.cancelled is True
    assert result.success is False
    assert result.imported_count == 5
    assert result.error_count == 7
    assert all(item.error == CANCELLED_MESSAGE for item in result.failed_items)
    assert len(fake_api.items) == 5
    assert events[-1].current_operation == CANCELLED_MESSAGE
    assert engine.is_cancelled is True


@pytest.mark.asyncio
async def test_new_run_clears_cancellation(fake_api, fast_config):
    engine = ImportEngine(fake_api, fast_config)
    engine.cancel()

    result = await engine.import_data(make_preview(make_records(2)))

    assert result.cancelled is False
    assert result.imported_count == 2


# ============================================================================
# Reference resolution
# ============================================================================

@pytest.mark.asyncio
async def test_category_is_created_once_and_cached(fake_api, fast_config):
    records = make_records(3, category="Herramientas")

    await ImportEngine(fake_api, fast_config).import_data(make_preview(records))

    assert len(fake_api.created_categories) == 1
    created = fake_api.created_categories[0]
    assert created["name"] == "Herramientas"
    assert created["color"] in CATEGORY_COLORS
    assert created["sortOrder"] == 999
    assert {item["category_id"] for item in fake_api.items} == {created["id"]}


@pytest.mark.asyncio
async def test_existing_category_is_reused(fake_api):
    resolver = ReferenceResolver(fake_api)

    assert await resolver.resolve_category_id("general") == "cat-general"
    assert fake_api.created_categories == []


@pytest.mark.asyncio
async def test_location_is_created(fake_api):
    resolver = ReferenceResolver(fake_api)

    location_id = await resolver.resolve_location_id("Bodega Norte")

    assert fake_api.created_locations[0]["name"] == "Bodega Norte"
    assert fake_api.created_locations[0]["type"] == "storage"
    assert location_id == fake_api.created_locations[0]["id"]


@pytest.mark.asyncio
async def test_color_comes_from_injected_rng(fake_api):
    resolver = ReferenceResolver(fake_api, rng=random.Random(7))
    expected = random.Random(7).choice(CATEGORY_COLORS)

    await resolver.resolve_category_id("Pinturas")

    assert fake_api.created_categories[0]["color"] == expected


@pytest.mark.asyncio
async def test_create_failure_falls_back_to_default(fake_api):
    fake_api.fail_category_create = True
    resolver = ReferenceResolver(fake_api)

    assert await resolver.resolve_category_id("Nueva") == "cat-general"


@pytest.mark.asyncio
async def test_search_failure_falls_back_to_default(fake_api):
    fake_api.fail_category_search = True
    resolver = ReferenceResolver(fake_api)

    assert await resolver.resolve_category_id("Herramientas") == "cat-general"
    assert fake_api.created_categories == []


@pytest.mark.asyncio
async def test_list_failure_gives_empty_id(fake_api, fast_config):
    fake_api.fail_category_list = True

    result = await ImportEngine(fake_api, fast_config).import_data(make_preview(make_records(1)))

    assert result.success is True
    assert fake_api.items[0]["category_id"] == ""


@pytest.mark.asyncio
async def test_default_is_cached(fake_api):
    resolver = ReferenceResolver(fake_api)

    first = await resolver.resolve_category_id(None)
    fake_api.categories.clear()
    second = await resolver.resolve_category_id("   ")

    assert first == second == "cat-general"


@pytest.mark.parametrize("records, expected", [
    ([{"id": "1", "name": "Herramientas"}, {"id": "2", "name": "General"}], "2"),
    ([{"id": "1", "name": "Herramientas"}, {"id": "2", "name": "Sin categoría"}], "2"),
    ([{"id": "1", "name": "Herramientas"}], "1"),
    ([], ""),
])
def test_pick_default_id(records, expected):
    assert pick_default_id(records, DEFAULT_CATEGORY_HINTS) == expected


# ============================================================================
# Payload and statistics
# ============================================================================

@pytest.mark.asyncio
async def test_prepare_item_data_fills_defaults(fake_api):
    resolver = ReferenceResolver(fake_api)

    payload = await ImportEngine.prepare_item_data(
        {"sku": "A1", "name": "Widget", "tags": "rojo, azul", "price": 5.5}, resolver
    )

    assert payload["unit_price"] == 5.5
    assert payload["tags"] == ["rojo", "azul"]
    assert payload["max_stock"] == 1000
    assert payload["status"] == "active"
    assert payload["description"] == ""
    assert "price" not in payload


def test_import_statistics():
    result = ImportResult(imported_count=3, error_count=1, warning_count=2, duration=2.0)

    stats = ImportEngine.get_import_statistics(result)

    assert stats == {
        "success_rate": 75.0,
        "average_time_per_item": 0.5,
        "error_rate": 25.0,
        "warning_rate": 50.0,
    }


def test_import_statistics_without_rows():
    stats = ImportEngine.get_import_statistics(ImportResult())

    assert set(stats.values()) == {0.0}
