"""
Reference resolver for the CSV import.

Turns free-text category and location names into ids of the inventory backend
with a "search, else create, else default" chain. Failures never propagate:
the worst outcome is an empty id.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional, Tuple

import httpx

from inventory_import.schemas.inventory_item_schema import CategoryCreateSchema, LocationCreateSchema
from inventory_import.services.interfaces.inventory_api_interface import IInventoryApi, InventoryApiError

logger = logging.getLogger(__name__)


CATEGORY_COLORS = [
    "#3b82f6", "#ef4444", "#10b981", "#f59e0b", "#8b5cf6",
    "#06b6d4", "#84cc16", "#f97316", "#ec4899", "#6366f1",
]

DEFAULT_CATEGORY_HINTS = ("general", "sin categoría")
DEFAULT_LOCATION_HINTS = ("general", "sin ubicación")

# Failures of the collaborator that degrade to the default id
RESOLUTION_ERRORS = (InventoryApiError, httpx.HTTPError)


class ReferenceResolver:
    """
    Resolves category/location names to ids.

    Ids are cached per name for the lifetime of the resolver, one resolver is
    used per import run. A lock per kind serialises the search-else-create
    round trip so concurrent rows never create the same record twice.
    """

    def __init__(self, api: IInventoryApi, rng: Optional[random.Random] = None):
        self.api = api
        self.rng = rng or random.Random()
        self._cache: Dict[Tuple[str, str], str] = {}
        self._defaults: Dict[str, str] = {}
        self._locks = {"category": asyncio.Lock(), "location": asyncio.Lock()}

    async def resolve_category_id(self, name: Optional[str]) -> str:
        return await self._resolve(
            "category",
            name,
            search=self.api.search_category,
            create=self._create_category,
            list_all=self.api.list_categories,
            hints=DEFAULT_CATEGORY_HINTS,
        )

    async def resolve_location_id(self, name: Optional[str]) -> str:
        return await self._resolve(
            "location",
            name,
            search=self.api.search_location,
            create=self._create_location,
            list_all=self.api.list_locations,
            hints=DEFAULT_LOCATION_HINTS,
        )

    async def _resolve(self, kind: str, name: Optional[str], search, create, list_all, hints) -> str:
        name = (name or "").strip()

        async with self._locks[kind]:
            if not name:
                return await self._default_id(kind, list_all, hints)

            key = (kind, name.lower())
            if key in self._cache:
                return self._cache[key]

            try:
                record = await search(name)
            except RESOLUTION_ERRORS as e:
                logger.warning(f"Error searching {kind} '{name}': {e}, using default")
                return await self._default_id(kind, list_all, hints)

            if record and record.get("id") not in (None, ""):
                resolved = str(record["id"])
            else:
                try:
                    resolved = await create(name)
                    logger.info(f"Created {kind} '{name}' with id {resolved}")
                except RESOLUTION_ERRORS as e:
                    logger.warning(f"Error creating {kind} '{name}': {e}, using default")
                    return await self._default_id(kind, list_all, hints)

            self._cache[key] = resolved
            return resolved

    async def _create_category(self, name: str) -> str:
        payload = CategoryCreateSchema(name=name, color=self.rng.choice(CATEGORY_COLORS))
        return await self.api.create_category(payload.model_dump())

    async def _create_location(self, name: str) -> str:
        payload = LocationCreateSchema(name=name)
        return await self.api.create_location(payload.model_dump())

    async def _default_id(self, kind: str, list_all, hints) -> str:
        if kind in self._defaults:
            return self._defaults[kind]

        try:
            records = await list_all()
        except RESOLUTION_ERRORS as e:
            # not cached: the next row retries the listing
            logger.warning(f"Error getting default {kind}: {e}")
            return ""

        resolved = pick_default_id(records, hints)
        self._defaults[kind] = resolved
        return resolved


def pick_default_id(records: List[Dict[str, Any]], hints: Tuple[str, ...]) -> str:
    """First record whose name contains a hint, else the first record, else ''"""
    for record in records:
        record_name = str(record.get("name") or "").lower()
        if any(hint in record_name for hint in hints):
            return str(record.get("id") or "")
    if records:
        return str(records[0].get("id") or "")
    return ""
