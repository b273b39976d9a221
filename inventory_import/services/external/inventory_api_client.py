import httpx
import asyncio
import json
from typing import Dict, Any, List, Optional
import logging

from inventory_import.core.settings import ImportSettings, get_import_settings
from inventory_import.services.interfaces.inventory_api_interface import IInventoryApi, InventoryApiError

logger = logging.getLogger(__name__)


class InventoryApiClient(IInventoryApi):
    """Inventory backend REST client"""

    def __init__(
        self,
        settings: Optional[ImportSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = 2,
        base_delay: float = 0.5
    ):
        self.settings = settings or get_import_settings()
        self.base_url = self.settings.inventory_api_base_url.rstrip("/")
        self.timeout = self.settings.inventory_api_timeout
        self.transport = transport
        self.max_retries = max_retries
        self.base_delay = base_delay

    async def search_category(self, name: str) -> Optional[Dict[str, Any]]:
        data = await self._request("POST", "/api/categories/search", json={"name": name})
        return self._extract_record(data, "category")

    async def create_category(self, payload: Dict[str, Any]) -> str:
        data = await self._request("POST", "/api/categories", json=payload)
        return self._extract_id(data, "category")

    async def list_categories(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/api/categories/items")
        return self._extract_list(data, "categories")

    async def search_location(self, name: str) -> Optional[Dict[str, Any]]:
        data = await self._request("POST", "/api/locations/search", json={"name": name})
        return self._extract_record(data, "location")

    async def create_location(self, payload: Dict[str, Any]) -> str:
        data = await self._request("POST", "/api/locations", json=payload)
        return self._extract_id(data, "location")

    async def list_locations(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/api/locations/items")
        return self._extract_list(data, "locations")

    async def create_item(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create one inventory item

        Args:
            payload: Fully resolved item (category/location ids, typed values)

        Returns:
            Stored item as returned by the API

        Raises:
            InventoryApiError: Non-2xx response (message from the error/message keys)
            httpx.HTTPError: Connection level failure
        """
        logger.debug(f"Create item payload: {json.dumps(payload, ensure_ascii=False, default=str)}")
        data = await self._request("POST", "/api/inventory/items", json=payload)
        if isinstance(data, dict) and isinstance(data.get("item"), dict):
            return data["item"]
        return data if isinstance(data, dict) else {}

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        logger.info(f"Inventory API {method} {url}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await self._make_request_with_retry(
                client, method, url, headers=self._get_headers(), **kwargs
            )

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = self._extract_error_message(data) or f"HTTP {response.status_code}"
            logger.warning(f"Inventory API {method} {url} failed ({response.status_code}): {message}")
            raise InventoryApiError(message, response.status_code)

        return data

    async def _make_request_with_retry(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request, retrying on 429 and 5xx with exponential backoff

        Returns:
            The last response (the caller inspects the status)
        """
        for attempt in range(self.max_retries + 1):
            response = await client.request(method, url, **kwargs)

            if response.status_code < 500 and response.status_code != 429:
                return response

            if attempt < self.max_retries:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"Inventory API request failed with status {response.status_code}, "
                    f"retrying in {delay}s (attempt {attempt + 1}/{self.max_retries + 1})"
                )
                await asyncio.sleep(delay)

        logger.error(f"Inventory API request failed after {self.max_retries} retries")
        return response

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        if self.settings.inventory_api_token:
            headers["Authorization"] = f"Bearer {self.settings.inventory_api_token}"
        return headers

    @staticmethod
    def _extract_error_message(data: Any) -> Optional[str]:
        if isinstance(data, dict):
            for key in ("error", "message", "detail"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
                if isinstance(value, dict) and isinstance(value.get("message"), str):
                    return value["message"]
        return None

    @staticmethod
    def _extract_record(data: Any, key: str) -> Optional[Dict[str, Any]]:
        if isinstance(data, dict) and isinstance(data.get(key), dict):
            return data[key]
        return None

    def _extract_id(self, data: Any, key: str) -> str:
        record = self._extract_record(data, key)
        if not record or record.get("id") in (None, ""):
            raise InventoryApiError(f"Respuesta sin id de {key}")
        return str(record["id"])

    @staticmethod
    def _extract_list(data: Any, key: str) -> List[Dict[str, Any]]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for candidate in (key, "items", "data"):
                if isinstance(data.get(candidate), list):
                    return data[candidate]
        return []
