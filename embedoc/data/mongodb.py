import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pymongo import MongoClient, errors
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from embedoc.data.base import DbAdapter

logger = logging.getLogger(__name__)


class MongoDBAdapter(DbAdapter):
    """
    MongoDB adapter with robust defaults:
      - Retryable writes enabled
      - Majority write concern
      - Configurable timeouts and pool sizes
      - Causal consistency sessions, re-entrant context
      - Multi-document transactions (requires a replica set)
    """

    def __init__(
        self,
        mongo_uri: str,
        mongo_database: str,
        **client_options: Any
    ):
        options = {
            'retryWrites': True,
            'w': 'majority',
            'serverSelectionTimeoutMS': 5000,
            'connectTimeoutMS': 5000,
            'maxPoolSize': 100,
            'tz_aware': True,
        }
        options.update(client_options)
        self.client: MongoClient = MongoClient(mongo_uri, **options)
        self.db_name: str = mongo_database
        self.db: Database = None
        self._session: Optional[ClientSession] = None
        self._depth = 0

    def __enter__(self) -> 'MongoDBAdapter':
        """
        Context manager entry point for establishing a MongoDB connection.

        The outermost entry verifies the connection with a ping, selects the
        database and starts a causal-consistency session. Nested entries reuse
        that session.

        Returns:
            MongoDBAdapter: The initialized adapter with a live connection.

        Raises:
            ConnectionError: If the ping command fails.
        """
        if self._depth == 0:
            try:
                self.client.admin.command('ping')
            except errors.PyMongoError as e:
                raise ConnectionError(f"MongoDB ping failed: {e}") from e

            self.db = self.client.get_database(self.db_name)
            self._session = self.client.start_session(causal_consistency=True)
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        """
        End the session when the outermost context exits.

        The MongoClient stays open; close() releases it at application teardown.
        """
        self._depth = max(self._depth - 1, 0)
        if self._depth == 0 and self._session:
            self._session.end_session()
            self._session = None

    def close(self) -> None:
        """Close the MongoClient and its connection pool."""
        if self._session:
            self._session.end_session()
            self._session = None
        self._depth = 0
        self.client.close()

    def _get_collection(self, name: str, write: bool = False) -> Collection:
        """
        Get a MongoDB collection with a local read concern, and a majority
        write concern when `write` is True.
        """
        rc = ReadConcern('local')
        if write:
            return self.db.get_collection(name, read_concern=rc, write_concern=WriteConcern('majority'))
        return self.db.get_collection(name, read_concern=rc)

    def in_transaction(self) -> bool:
        return bool(self._session and self._session.in_transaction)

    def run_transaction(self, operations_list: List[Callable[[], Any]]) -> List[Any]:
        """
        Execute a list of operations as one transaction within the current session.

        Each callable runs in order; either all of their writes are committed
        or none are. If a transaction is already running on the session the
        operations join it instead of starting a new one.

        Args:
            operations_list (List[Callable]): Callables to run in the transaction.

        Returns:
            List[Any]: The return value of each operation.

        Raises:
            RuntimeError: If the session is not started before calling this method.
        """
        if not self._session:
            raise RuntimeError("Session not started")
        if self._session.in_transaction:
            return [op() for op in operations_list]
        logger.debug("Starting transaction with %d operation(s)", len(operations_list))
        with self._session.start_transaction():
            return [op() for op in operations_list]

    def get_one(
        self,
        table: str,
        conditions: Dict[str, Any],
        sort: Optional[List[Tuple[str, int]]] = None,
        hint: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Retrieve a single document from the specified collection.

        Args:
            table (str): The name of the collection.
            conditions (Dict[str, Any]): The filter.
            sort (Optional[List[Tuple[str, int]]]): Optional sort order.
            hint (Optional[str]): Optional index hint.

        Returns:
            Optional[Dict[str, Any]]: The matching document, or None.

        Raises:
            RuntimeError: If the query fails due to a PyMongoError.
        """
        logger.debug("db.%s.find_one(%r)", table, conditions)
        try:
            coll = self._get_collection(table)
            kwargs: Dict[str, Any] = {'session': self._session}
            if hint is not None:
                kwargs['hint'] = hint
            if sort is not None:
                kwargs['sort'] = sort
            return coll.find_one(conditions, **kwargs)
        except errors.PyMongoError as e:
            raise RuntimeError(f"get_one failed: {e}") from e

    def get_many(
        self,
        table: str,
        conditions: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        hint: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Retrieve the documents of a collection matching `conditions`.

        Args:
            table (str): The name of the collection.
            conditions (Optional[Dict[str, Any]]): The filter, all documents if None.
            sort (Optional[List[Tuple[str, int]]]): Optional sort order.
            limit (Optional[int]): Maximum number of documents, no limit if None.
            offset (Optional[int]): Number of documents to skip.
            hint (Optional[str]): Optional index hint.

        Raises:
            RuntimeError: If the query fails due to a PyMongoError.
        """
        logger.debug("db.%s.find(%r)", table, conditions)
        try:
            coll = self._get_collection(table)
            kwargs: Dict[str, Any] = {'session': self._session}
            if hint:
                kwargs['hint'] = hint
            cursor = coll.find(conditions or {}, **kwargs)
            if sort:
                cursor = cursor.sort(sort)
            if offset is not None and offset > 0:
                cursor = cursor.skip(offset)
            if limit is not None and limit > 0:
                cursor = cursor.limit(limit)
            return list(cursor)
        except errors.PyMongoError as e:
            raise RuntimeError(f"get_many failed: {e}") from e

    def get_count(self, table: str, conditions: Dict[str, Any]) -> int:
        """
        Count the documents of a collection matching `conditions`.

        Raises:
            RuntimeError: If the query fails due to a PyMongoError.
        """
        logger.debug("db.%s.count_documents(%r)", table, conditions)
        try:
            coll = self._get_collection(table)
            return coll.count_documents(conditions or {}, session=self._session)
        except errors.PyMongoError as e:
            raise RuntimeError(f"get_count failed: {e}") from e

    def insert_one(self, table: str, document: Dict[str, Any]) -> Any:
        """
        Insert a document and return its `_id`.

        Raises:
            RuntimeError: If the operation fails due to a PyMongoError.
        """
        logger.debug("db.%s.insert_one(%r)", table, document)
        try:
            coll = self._get_collection(table, write=True)
            return coll.insert_one(document, session=self._session).inserted_id
        except errors.PyMongoError as e:
            raise RuntimeError(f"insert_one failed: {e}") from e

    def insert_many(self, table: str, documents: List[Dict[str, Any]]) -> List[Any]:
        """
        Insert several documents and return their `_id`s in order.

        Raises:
            ValueError: If the documents list is empty.
            RuntimeError: If the operation fails due to a PyMongoError.
        """
        if not documents:
            raise ValueError(
                "insert_many failed: documents list cannot be empty")

        logger.debug("db.%s.insert_many(<%d documents>)", table, len(documents))
        try:
            coll = self._get_collection(table, write=True)
            return list(coll.insert_many(documents, session=self._session).inserted_ids)
        except errors.PyMongoError as e:
            raise RuntimeError(f"insert_many failed: {e}") from e

    def delete_many(self, table: str, conditions: Dict[str, Any]) -> int:
        """
        Delete the documents matching `conditions` and return how many were removed.

        Raises:
            RuntimeError: If the operation fails due to a PyMongoError.
        """
        logger.debug("db.%s.delete_many(%r)", table, conditions)
        try:
            coll = self._get_collection(table, write=True)
            return coll.delete_many(conditions, session=self._session).deleted_count
        except errors.PyMongoError as e:
            raise RuntimeError(f"delete_many failed: {e}") from e

    def list_collection_names(self) -> List[str]:
        try:
            return self.db.list_collection_names(session=self._session)
        except errors.PyMongoError as e:
            raise RuntimeError(f"list_collection_names failed: {e}") from e

    def create_collection(self, table: str) -> bool:
        """
        Create a collection unless it already exists.

        Returns:
            bool: True if the collection was created.
        """
        if table in self.list_collection_names():
            return False
        logger.debug("db.createCollection(%r)", table)
        try:
            self.db.create_collection(table)
            return True
        except errors.CollectionInvalid:
            # created concurrently
            return False
        except errors.PyMongoError as e:
            raise RuntimeError(f"create_collection failed: {e}") from e

    def drop_collection(self, table: str) -> None:
        logger.debug("db.%s.drop()", table)
        try:
            self.db.drop_collection(table)
        except errors.PyMongoError as e:
            raise RuntimeError(f"drop_collection failed: {e}") from e

    def create_index(
        self,
        table: str,
        columns: List[Union[str, Tuple[str, int]]],
        index_name: str,
        unique: bool = False,
        partial_filter: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Create a MongoDB index.

        Args:
            table (str): The collection on which to create the index.
            columns (List[Union[str, Tuple[str, int]]]): Column names or (name, order) tuples.
            index_name (str): The name of the index.
            unique (bool): Create a unique index.
            partial_filter (Optional[Dict[str, Any]]): Optional partial filter expression.

        Returns:
            str: The name of the created index.

        Raises:
            RuntimeError: If the operation fails due to a PyMongoError.
        """
        logger.debug("db.%s.createIndex(%r, name=%r)", table, columns, index_name)
        try:
            options: Dict[str, Any] = {'name': index_name}
            if unique:
                options['unique'] = True
            if partial_filter:
                options['partialFilterExpression'] = partial_filter
            coll = self._get_collection(table, write=True)
            return coll.create_index(columns, **options)
        except errors.PyMongoError as e:
            raise RuntimeError(f"create_index failed: {e}") from e

    def aggregate(
        self,
        table: str,
        pipeline: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Execute an aggregation pipeline and return raw results.

        Raises:
            RuntimeError: If the aggregation fails due to a PyMongoError.
        """
        logger.debug("db.%s.aggregate(%r)", table, pipeline)
        try:
            coll = self._get_collection(table)
            return list(coll.aggregate(pipeline, session=self._session))
        except errors.PyMongoError as e:
            raise RuntimeError(f"aggregate failed: {e}") from e
