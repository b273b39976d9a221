"""
Main fixtures for the inventory import tests
"""
import asyncio
import sys
from pathlib import Path
from typing import AsyncGenerator, Dict, Any, List, Optional

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# Add the project path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from inventory_import.main import app
from inventory_import.routers.csv_import import (
    ImportSessionRegistry,
    get_import_config,
    get_inventory_api,
    get_session_registry,
)
from inventory_import.services.csv_import.config import CSVImportConfig
from inventory_import.services.csv_import.csv_parser import CSVParser
from inventory_import.services.csv_import.column_mapper import ColumnMapper
from inventory_import.services.csv_import.data_validator import DataValidator
from inventory_import.services.interfaces.inventory_api_interface import IInventoryApi, InventoryApiError


# ============================================================================
# Fake Inventory API
# ============================================================================

class FakeInventoryApi(IInventoryApi):
    """In-memory inventory API for the tests"""

    def __init__(
        self,
        categories: Optional[List[Dict[str, Any]]] = None,
        locations: Optional[List[Dict[str, Any]]] = None
    ):
        self.categories: List[Dict[str, Any]] = list(categories or [])
        self.locations: List[Dict[str, Any]] = list(locations or [])
        self.items: List[Dict[str, Any]] = []
        self.created_categories: List[Dict[str, Any]] = []
        self.created_locations: List[Dict[str, Any]] = []
        self.next_id = 100

        # failure switches
        self.failing_skus: Dict[str, str] = {}
        self.connection_error_skus: set = set()
        self.unexpected_error_skus: set = set()
        self.fail_category_search = False
        self.fail_category_create = False
        self.fail_category_list = False
        self.fail_location_create = False

        self.in_flight = 0
        self.max_in_flight = 0

    def _new_id(self, prefix: str) -> str:
        self.next_id += 1
        return f"{prefix}-{self.next_id}"

    async def search_category(self, name: str) -> Optional[Dict[str, Any]]:
        if self.fail_category_search:
            raise InventoryApiError("search failed", 500)
        return next((c for c in self.categories if c["name"].lower() == name.lower()), None)

    async def create_category(self, payload: Dict[str, Any]) -> str:
        if self.fail_category_create:
            raise InventoryApiError("create failed", 500)
        category = {"id": self._new_id("cat"), **payload}
        self.categories.append(category)
        self.created_categories.append(category)
        return category["id"]

    async def list_categories(self) -> List[Dict[str, Any]]:
        if self.fail_category_list:
            raise httpx.ConnectError("connection refused")
        return list(self.categories)

    async def search_location(self, name: str) -> Optional[Dict[str, Any]]:
        return next((l for l in self.locations if l["name"].lower() == name.lower()), None)

    async def create_location(self, payload: Dict[str, Any]) -> str:
        if self.fail_location_create:
            raise InventoryApiError("create failed", 500)
        location = {"id": self._new_id("loc"), **payload}
        self.locations.append(location)
        self.created_locations.append(location)
        return location["id"]

    async def list_locations(self) -> List[Dict[str, Any]]:
        return list(self.locations)

    async def create_item(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            sku = payload["sku"]
            if sku in self.failing_skus:
                raise InventoryApiError(self.failing_skus[sku], 400)
            if sku in self.connection_error_skus:
                raise httpx.ConnectError("connection refused")
            if sku in self.unexpected_error_skus:
                raise RuntimeError("boom")
            item = {"id": self._new_id("item"), **payload}
            self.items.append(item)
            return item
        finally:
            self.in_flight -= 1


# ============================================================================
# Pipeline components
# ============================================================================

@pytest.fixture
def fake_api() -> FakeInventoryApi:
    return FakeInventoryApi(
        categories=[{"id": "cat-general", "name": "General"}],
        locations=[{"id": "loc-main", "name": "Almacén principal"}],
    )


@pytest.fixture
def fast_config() -> CSVImportConfig:
    """Default configuration without the inter-batch pause"""
    return CSVImportConfig(inter_batch_delay=0)


@pytest.fixture
def parser(fast_config) -> CSVParser:
    return CSVParser(fast_config)


@pytest.fixture
def mapper() -> ColumnMapper:
    return ColumnMapper()


@pytest.fixture
def validator() -> DataValidator:
    return DataValidator()


# ============================================================================
# App Fixture with Overrides
# ============================================================================

@pytest.fixture(scope="function")
def test_app(fake_api: FakeInventoryApi, fast_config: CSVImportConfig):
    """
    FastAPI app with the inventory API, configuration and session store
    overridden for the tests.
    """
    registry = ImportSessionRegistry()
    app.dependency_overrides[get_inventory_api] = lambda: fake_api
    app.dependency_overrides[get_import_config] = lambda: fast_config
    app.dependency_overrides[get_session_registry] = lambda: registry

    try:
        yield app
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# HTTP Clients
# ============================================================================

@pytest.fixture
def client(test_app) -> TestClient:
    """Synchronous HTTP client for simple tests"""
    return TestClient(test_app)


@pytest_asyncio.fixture
async def async_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Asynchronous HTTP client"""
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac
