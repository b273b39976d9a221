"""
Interface of the inventory API used by the import engine
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class InventoryApiError(Exception):
    """The inventory API rejected a request or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class IInventoryApi(ABC):
    """Category, location and item endpoints of the inventory backend"""

    @abstractmethod
    async def search_category(self, name: str) -> Optional[Dict[str, Any]]:
        """Returns the category named `name`, or None"""
        pass

    @abstractmethod
    async def create_category(self, payload: Dict[str, Any]) -> str:
        """Creates a category and returns its id"""
        pass

    @abstractmethod
    async def list_categories(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def search_location(self, name: str) -> Optional[Dict[str, Any]]:
        """Returns the location named `name`, or None"""
        pass

    @abstractmethod
    async def create_location(self, payload: Dict[str, Any]) -> str:
        """Creates a location and returns its id"""
        pass

    @abstractmethod
    async def list_locations(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def create_item(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Creates one inventory item and returns the stored record"""
        pass
