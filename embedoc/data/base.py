from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple


class DbAdapter(ABC):
    """Abstract base class for document database adapters."""

    @abstractmethod
    def __enter__(self) -> 'DbAdapter':
        """Context manager entry point for preparing DB connection."""
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_value, traceback):
        """Context manager exit point for releasing the DB session."""
        pass

    @abstractmethod
    def run_transaction(self, operations_list: List[Callable[[], Any]]) -> List[Any]:
        """Execute a list of operations as a transaction."""
        pass

    @abstractmethod
    def get_one(self, table: str, conditions: Dict[str, Any],
                sort: Optional[List[Tuple[str, int]]] = None) -> Optional[Dict[str, Any]]:
        """Fetches a single record from the specified collection based on given conditions."""
        pass

    @abstractmethod
    def get_many(self, table: str, conditions: Optional[Dict[str, Any]] = None,
                 sort: Optional[List[Tuple[str, int]]] = None, limit: Optional[int] = None,
                 offset: Optional[int] = None) -> List[Dict[str, Any]]:
        """Fetches multiple records from the specified collection based on given conditions."""
        pass

    @abstractmethod
    def get_count(self, table: str, conditions: Dict[str, Any]) -> int:
        """Counts the records matching the given conditions."""
        pass

    @abstractmethod
    def insert_one(self, table: str, document: Dict[str, Any]) -> Any:
        """Inserts a record and returns its generated key."""
        pass

    @abstractmethod
    def insert_many(self, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        """Inserts several records and returns their generated keys."""
        pass

    @abstractmethod
    def delete_many(self, table: str, conditions: Dict[str, Any]) -> int:
        """Deletes the records matching the given conditions."""
        pass

    @abstractmethod
    def close(self):
        """Closes the underlying client."""
        pass
