import logging
from dataclasses import Field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from bson import ObjectId

from embedoc.data import MongoDBAdapter
from embedoc.errors import PopulatePathError
from embedoc.models import BaseModel, related_model
from embedoc.models.fields import FIELD_TYPE_M2M, field_type, is_embedded, is_relation
from embedoc.repositories.base_repository import BaseRepository


class MongoDbRepository(BaseRepository):
    """MongoDB repository for one BaseModel class, with relation population."""

    def __init__(
        self,
        db_adapter: MongoDBAdapter,
        model: Type[BaseModel]
    ):
        """
        Initializes a MongoDbRepository instance.

        Args:
            db_adapter (MongoDBAdapter): The database adapter for MongoDB operations.
            model (Type[BaseModel]): The model class to be used in this repository.
        """
        super().__init__(db_adapter, model)
        self.adapter: MongoDBAdapter = db_adapter
        self.logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}")
        if not logging.getLogger().hasHandlers():
            logging.basicConfig(
                level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    def find_one(
        self,
        conditions: Dict[str, Any],
        populate: List[str] = None
    ) -> Optional[BaseModel]:
        """
        Fetches a single record matching `conditions`.

        Args:
            conditions (Dict[str, Any]): Filter written against the model (`id` may be used for `_id`).
            populate (List[str], optional): Dotted relation paths to load, e.g.
                ``["embedded_member.other_entities"]``.

        Returns:
            Optional[BaseModel]: The model instance, or None if nothing matches.
        """
        db_conditions = self._normalize_conditions(conditions)
        data = self._execute_within_context(
            self.adapter.get_one, self.table_name, db_conditions)

        instance = self._process_data_from_db(data)
        if instance is not None and populate:
            self.populate([instance], populate)
        return instance

    def find(
        self,
        conditions: Optional[Dict[str, Any]] = None,
        populate: List[str] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> List[BaseModel]:
        """
        Fetches every record matching `conditions`.

        Args:
            conditions (Optional[Dict[str, Any]]): Filter, all records if None.
            populate (List[str], optional): Dotted relation paths to load.
            sort (Optional[List[Tuple[str, int]]]): Sort order.
            limit (Optional[int]): Maximum number of records.
            offset (Optional[int]): Number of records to skip.

        Returns:
            List[BaseModel]: The model instances.
        """
        db_conditions = self._normalize_conditions(conditions)
        records = self._execute_within_context(
            self.adapter.get_many,
            self.table_name,
            db_conditions,
            sort=sort,
            limit=limit,
            offset=offset
        )

        instances = [self._process_data_from_db(record) for record in records or []]
        if instances and populate:
            self.populate(instances, populate)
        return instances

    def count(self, conditions: Optional[Dict[str, Any]] = None) -> int:
        return self._execute_within_context(
            self.adapter.get_count, self.table_name, self._normalize_conditions(conditions))

    def _check_instance(self, instance: BaseModel):
        if not isinstance(instance, self.model):
            raise TypeError(
                f"Expected {self.model.__name__} instance, got {type(instance).__name__}")

    def insert(self, instance: BaseModel) -> BaseModel:
        """
        Validates and inserts a new record, then assigns the generated `_id` to the instance.

        Args:
            instance (BaseModel): The instance to insert.

        Returns:
            BaseModel: The same instance, now carrying its `_id` / `id`.
        """
        self._check_instance(instance)
        instance.prepare_for_save()
        document = instance.as_dict()
        inserted_id = self._execute_within_context(
            self.adapter.insert_one, self.table_name, document)
        instance._id = inserted_id
        self.logger.info(f"Inserted {self.model.__name__} id={instance.id} into {self.table_name}")
        return instance

    def insert_many(self, instances: List[BaseModel]) -> List[BaseModel]:
        """
        Validates and inserts several records in one round trip.

        Returns:
            List[BaseModel]: The same instances, now carrying their `_id` / `id`.
        """
        if not instances:
            return []
        documents = []
        for instance in instances:
            self._check_instance(instance)
            instance.prepare_for_save()
            documents.append(instance.as_dict())

        inserted_ids = self._execute_within_context(
            self.adapter.insert_many, self.table_name, documents)
        for instance, inserted_id in zip(instances, inserted_ids):
            instance._id = inserted_id
        self.logger.info(f"Inserted {len(instances)} {self.model.__name__} documents into {self.table_name}")
        return instances

    def delete(self, instance: BaseModel) -> bool:
        """
        Deletes the record of `instance` from the collection.

        Returns:
            bool: True if a document was removed.

        Raises:
            ValueError: If the instance was never inserted.
        """
        self._check_instance(instance)
        if instance._id is None:
            raise ValueError(f"Cannot delete an unsaved {self.model.__name__}")
        self.logger.info(f"Deleting {self.model.__name__} id={instance.id} from {self.table_name}")
        deleted = self._execute_within_context(
            self.adapter.delete_many, self.table_name, {'_id': instance._id})
        return deleted > 0

    def populate(self, instances: List[BaseModel], paths: Iterable[str]) -> List[BaseModel]:
        """
        Loads the relations named by dotted `paths` on already fetched instances.

        A segment naming an embedded field descends into the embedded value(s);
        a segment naming a relation field replaces its references with the
        loaded records (one ``$in`` query per relation per path). Relations
        inside embedded values are resolved the same way as relations on the
        entity itself.

        Args:
            instances (List[BaseModel]): Instances of this repository's model.
            paths (Iterable[str]): e.g. ``["embedded_member.other_entities"]``.

        Returns:
            List[BaseModel]: The same instances.

        Raises:
            PopulatePathError: If a segment is not an embedded or relation field.
        """
        owners = [i for i in instances if i is not None]
        for path in paths or []:
            self._populate_path(self.model, owners, path.split('.'), path)
        return instances

    def _populate_path(self, model_cls, owners: List[Any], segments: List[str], path: str):
        if not owners or not segments:
            return
        name, rest = segments[0], segments[1:]
        f = model_cls.get_field(name)
        if f is None or not (is_embedded(f) or is_relation(f)):
            raise PopulatePathError(model_cls.__name__, path, name)

        target_cls = related_model(f, model_cls)
        if is_embedded(f):
            values = []
            for owner in owners:
                value = getattr(owner, f.name)
                if isinstance(value, list):
                    values.extend(v for v in value if v is not None)
                elif value is not None:
                    values.append(value)
            self._populate_path(target_cls, values, rest, path)
            return

        loaded = self._load_references(target_cls, owners, f)
        self._populate_path(target_cls, list(loaded.values()), rest, path)

    def _load_references(self, target_cls: Type[BaseModel], owners: List[Any], f: Field) -> Dict[ObjectId, BaseModel]:
        many = field_type(f) == FIELD_TYPE_M2M

        ids: List[ObjectId] = []
        for owner in owners:
            refs = getattr(owner, f.name) if many else [getattr(owner, f.name)]
            for ref in refs or []:
                if ref is not None and ref._id is not None and ref._id not in ids:
                    ids.append(ref._id)
        if not ids:
            return {}

        table = target_cls.get_collection_name()
        docs = self._execute_within_context(
            self.adapter.get_many, table, {'_id': {'$in': ids}})
        loaded = {doc['_id']: target_cls.from_dict(doc) for doc in docs}

        missing = [i for i in ids if i not in loaded]
        if missing:
            self.logger.warning(
                f"Dropping {len(missing)} dangling {target_cls.__name__} reference(s) on '{f.name}': {missing}")

        for owner in owners:
            if many:
                refs = getattr(owner, f.name) or []
                setattr(owner, f.name, [loaded[ref._id] for ref in refs if ref is not None and ref._id in loaded])
            else:
                ref = getattr(owner, f.name)
                if ref is not None:
                    setattr(owner, f.name, loaded.get(ref._id))
        return loaded
