"""
Import engine: sends validated records to the inventory API.

Batches run strictly in sequence, rows inside a batch are sent in chunks
awaited together. A failing row never aborts its siblings.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from inventory_import.schemas.inventory_item_schema import InventoryItemCreateSchema
from inventory_import.services.interfaces.inventory_api_interface import IInventoryApi, InventoryApiError

from .config import CSVImportConfig, DEFAULT_CSV_IMPORT_CONFIG
from .models import (
    FailedItem,
    ImportPreview,
    ImportProgress,
    ImportResult,
    ImportRowError,
    ValidatedRecord,
)
from .reference_resolver import ReferenceResolver

logger = logging.getLogger(__name__)


VALIDATION_FAILED_MESSAGE = "Item tiene errores de validación"
CANCELLED_MESSAGE = "Importación cancelada"

ProgressCallback = Callable[[ImportProgress], None]


class ImportEngine:
    """
    Batched, concurrency-limited importer.

    Args:
        api: Inventory API collaborator
        config: Supplies batch size, chunk size and inter-batch delay
        on_progress: Called at every batch start and once at the end
    """

    def __init__(
        self,
        api: IInventoryApi,
        config: CSVImportConfig = DEFAULT_CSV_IMPORT_CONFIG,
        on_progress: Optional[ProgressCallback] = None
    ):
        self.api = api
        self.config = config
        self.on_progress = on_progress
        self._cancelled = False

    def cancel(self) -> None:
        """
        Stop the running import at the next batch or chunk boundary.

        Calls already in flight complete; rows not yet sent are reported as
        failed.
        """
        logger.info("Import cancellation requested")
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    async def import_data(self, preview: ImportPreview, batch_size: Optional[int] = None) -> ImportResult:
        """
        Import every valid record of the preview.

        Only unexpected exceptions escape; row failures are collected in the
        result.

        Args:
            preview: Validator output
            batch_size: Rows per batch, defaults to config.batch_size

        Returns:
            ImportResult
        """
        self._cancelled = False
        batch_size = max(1, batch_size or self.config.batch_size)
        start = time.monotonic()
        resolver = ReferenceResolver(self.api)

        result = ImportResult(
            warning_count=len(preview.warnings),
            errors=list(preview.errors),
            warnings=list(preview.warnings),
        )

        # rows rejected by the validator never reach the API
        for record in preview.rejected_data:
            result.failed_items.append(FailedItem(record.row, record.to_dict(), VALIDATION_FAILED_MESSAGE))
            result.error_count += 1

        rejected_rows = {record.row for record in preview.rejected_data}
        valid_records = [record for record in preview.mapped_data if record.row not in rejected_rows]
        total = len(valid_records)

        batches = [valid_records[i:i + batch_size] for i in range(0, total, batch_size)]
        logger.info(
            f"Starting import of {total} rows in {len(batches)} batches "
            f"({result.error_count} rows rejected by validation)"
        )

        processed = 0
        for batch_index, batch in enumerate(batches):
            if self._cancelled:
                self._fail_remaining(result, valid_records[processed:])
                break

            self._emit(ImportProgress(
                current_row=processed,
                total_rows=total,
                percentage=round(processed / total * 100),
                current_operation=f"Procesando lote {batch_index + 1} de {len(batches)}",
                errors=result.errors,
                warnings=result.warnings,
            ))

            processed += await self._process_batch(batch, resolver, result)

            if self._cancelled:
                self._fail_remaining(result, valid_records[processed:])
                break

            if batch_index < len(batches) - 1:
                await asyncio.sleep(self.config.inter_batch_delay)

        result.cancelled = self._cancelled
        result.success = result.error_count == 0 and not result.cancelled
        result.duration = time.monotonic() - start

        self._emit(ImportProgress(
            current_row=total,
            total_rows=total,
            percentage=100,
            current_operation=CANCELLED_MESSAGE if result.cancelled else "Importación completada",
            errors=result.errors,
            warnings=result.warnings,
            is_complete=True,
            is_error=result.error_count > 0,
        ))

        logger.info(
            f"Import finished: {result.imported_count} imported, {result.error_count} failed "
            f"in {result.duration:.2f}s"
        )
        return result

    async def _process_batch(
        self,
        batch: List[ValidatedRecord],
        resolver: ReferenceResolver,
        result: ImportResult
    ) -> int:
        """Returns the number of rows sent"""
        chunk_size = max(1, self.config.chunk_size)
        sent = 0

        for offset in range(0, len(batch), chunk_size):
            if self._cancelled:
                break

            chunk = batch[offset:offset + chunk_size]
            outcomes = await asyncio.gather(
                *(self._import_item(record, resolver) for record in chunk),
                return_exceptions=True
            )

            for record, outcome in zip(chunk, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error(f"Unexpected error importing row {record.row}: {outcome}", exc_info=outcome)
                    self._record_failure(result, record, f"Error inesperado: {outcome}")
                elif isinstance(outcome, ImportRowError):
                    self._record_failure(result, record, outcome.message, outcome)
                else:
                    result.imported_count += 1
                    result.imported_items.append(outcome)

            sent += len(chunk)

        return sent

    async def _import_item(self, record: ValidatedRecord, resolver: ReferenceResolver):
        """
        Create one item.

        Returns:
            The imported item dict, or an ImportRowError for API failures
        """
        payload = await self.prepare_item_data(record.data, resolver)
        sku = str(record.data.get("sku") or "")

        try:
            created = await self.api.create_item(payload)
        except InventoryApiError as e:
            logger.warning(f"Row {record.row} rejected by inventory API: {e.message}")
            return ImportRowError(record.row, "sku", sku, f"Error del servidor: {e.message}")
        except httpx.HTTPError as e:
            logger.warning(f"Row {record.row} connection error: {e}")
            return ImportRowError(record.row, "sku", sku, f"Error de conexión: {e}")

        item = record.to_dict()
        if isinstance(created, dict) and created.get("id") is not None:
            item["id"] = created["id"]
        return item

    @staticmethod
    async def prepare_item_data(data: Dict[str, Any], resolver: ReferenceResolver) -> Dict[str, Any]:
        """Build the API payload of a record, resolving category and location"""
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [tag.strip() for tag in tags.split(",") if tag.strip()]

        item = InventoryItemCreateSchema(
            sku=str(data.get("sku") or ""),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            category_id=await resolver.resolve_category_id(data.get("category")),
            location_id=await resolver.resolve_location_id(data.get("location")),
            unit_price=data.get("price") or 0,
            cost=data.get("cost") or 0,
            quantity=data.get("quantity") or 0,
            min_stock=data.get("min_stock") or 0,
            max_stock=data.get("max_stock") or 1000,
            status=data.get("status") or "active",
            barcode=str(data.get("barcode") or ""),
            tags=tags,
            supplier=str(data.get("supplier") or ""),
            notes=str(data.get("notes") or ""),
        )
        return item.model_dump()

    @staticmethod
    def _record_failure(
        result: ImportResult,
        record: ValidatedRecord,
        message: str,
        error: Optional[ImportRowError] = None
    ) -> None:
        result.error_count += 1
        result.errors.append(error or ImportRowError(
            record.row, "sku", str(record.data.get("sku") or ""), message
        ))
        result.failed_items.append(FailedItem(record.row, record.to_dict(), message))

    @staticmethod
    def _fail_remaining(result: ImportResult, records: List[ValidatedRecord]) -> None:
        for record in records:
            result.error_count += 1
            result.failed_items.append(FailedItem(record.row, record.to_dict(), CANCELLED_MESSAGE))
        if records:
            logger.info(f"Import cancelled, {len(records)} rows not sent")

    def _emit(self, progress: ImportProgress) -> None:
        if self.on_progress is not None:
            self.on_progress(progress)

    @staticmethod
    def get_import_statistics(result: ImportResult) -> Dict[str, float]:
        return {
            "success_rate": result.success_rate,
            "average_time_per_item": result.average_time_per_item,
            "error_rate": result.error_rate,
            "warning_rate": result.warning_rate,
        }
