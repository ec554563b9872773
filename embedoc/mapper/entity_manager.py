import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from bson import ObjectId

from embedoc.errors import MapperConfigError
from embedoc.models import BaseModel
from embedoc.repositories import MongoDbRepository

logger = logging.getLogger(__name__)


class EntityManager:
    """
    Entry point for reading and writing entities of a DocumentMapper.

    Repositories are created per model and cached. With the mapper's
    `implicit_transactions` option every write runs inside a transaction.
    """

    def __init__(self, mapper):
        self.mapper = mapper
        self.adapter = mapper.adapter
        self._repositories: Dict[type, MongoDbRepository] = {}

    def repo(self, model: Type[BaseModel]) -> MongoDbRepository:
        """Return the repository of an entity managed by this mapper."""
        if model not in self._repositories:
            if model not in self.mapper.entities or not issubclass(model, BaseModel):
                raise MapperConfigError(
                    f"{getattr(model, '__name__', model)!s} is not a discovered entity")
            self._repositories[model] = MongoDbRepository(self.adapter, model)
        return self._repositories[model]

    def fork(self) -> 'EntityManager':
        """Return a new EntityManager of the same mapper."""
        return EntityManager(self.mapper)

    def _write(self, operation: Callable[[], Any]) -> Any:
        if not self.mapper.config.implicit_transactions:
            return operation()
        logger.debug("Wrapping write in an implicit transaction")
        with self.adapter:
            return self.adapter.run_transaction([operation])[0]

    def transactional(self, func: Callable[['EntityManager'], Any]) -> Any:
        """
        Run `func(em)` inside one transaction and return its result.

        Writes made through the EntityManager inside `func` join the transaction.
        """
        with self.adapter:
            return self.adapter.run_transaction([lambda: func(self)])[0]

    def create(self, model: Type[BaseModel], data: Dict[str, Any]) -> BaseModel:
        """Build an entity from constructor-style data without inserting it."""
        self.repo(model)
        return model.from_dict(data)

    def insert(
        self,
        model: Union[Type[BaseModel], BaseModel],
        data: Union[Dict[str, Any], BaseModel, None] = None
    ) -> ObjectId:
        """
        Insert one entity and return its primary key.

        Args:
            model: The entity class, or an entity instance (then `data` is ignored).
            data: Constructor-style data or an instance of `model`. Embedded values
                may be given as dicts; relation fields accept instances, ObjectIds
                or id strings.

        Returns:
            ObjectId: The generated `_id`.
        """
        if isinstance(model, BaseModel):
            instance = model
            model = type(instance)
        elif isinstance(data, BaseModel):
            instance = data
        else:
            instance = self.create(model, data or {})
        repo = self.repo(model)
        self._write(lambda: repo.insert(instance))
        return instance._id

    def insert_many(self, model: Type[BaseModel], rows: Iterable[Union[Dict[str, Any], BaseModel]]) -> List[ObjectId]:
        """Insert several entities of one class and return their primary keys in order."""
        repo = self.repo(model)
        instances = [row if isinstance(row, BaseModel) else model.from_dict(row) for row in rows]
        self._write(lambda: repo.insert_many(instances))
        return [instance._id for instance in instances]

    def find(
        self,
        model: Type[BaseModel],
        conditions: Optional[Dict[str, Any]] = None,
        populate: List[str] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> List[BaseModel]:
        return self.repo(model).find(conditions, populate=populate, sort=sort, limit=limit, offset=offset)

    def find_one(self, model: Type[BaseModel], conditions: Dict[str, Any],
                 populate: List[str] = None) -> Optional[BaseModel]:
        return self.repo(model).find_one(conditions, populate=populate)

    def find_one_or_fail(self, model: Type[BaseModel], conditions: Dict[str, Any],
                         populate: List[str] = None) -> BaseModel:
        return self.repo(model).find_one_or_fail(conditions, populate=populate)

    def count(self, model: Type[BaseModel], conditions: Optional[Dict[str, Any]] = None) -> int:
        return self.repo(model).count(conditions)

    def populate(self, instances: Union[BaseModel, List[BaseModel]], paths: Iterable[str]):
        """Load relations on already fetched entities; accepts one entity or a list of one class."""
        items = instances if isinstance(instances, list) else [instances]
        if items:
            self.repo(type(items[0])).populate(items, paths)
        return instances

    def remove(self, instance: BaseModel) -> bool:
        """Delete the document of `instance`; returns True if one was removed."""
        repo = self.repo(type(instance))
        return self._write(lambda: repo.delete(instance))
