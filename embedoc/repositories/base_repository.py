"""
base repository for embedoc
"""
from dataclasses import fields
from typing import Any, Dict, List, Optional, Type

from bson import ObjectId

from embedoc.data.base import DbAdapter
from embedoc.errors import NotFoundError
from embedoc.models import BaseModel, related_model
from embedoc.models.fields import is_embedded, is_relation


class BaseRepository:
    """
    BaseRepository class
    """

    def __init__(
        self,
        adapter: DbAdapter,
        model: Type[BaseModel]
    ):
        if not (isinstance(model, type) and issubclass(model, BaseModel)):
            raise TypeError(f"{model!r} is not a BaseModel subclass")
        self.adapter = adapter
        self.model = model
        self.table_name = model.get_collection_name()

    def _execute_within_context(
        self,
        func,
        *args,
        **kwargs
    ):
        """Utility method to execute adapter methods within the context manager."""
        with self.adapter:
            return func(*args, **kwargs)

    def _process_data_from_db(
        self,
        data: Optional[Dict[str, Any]]
    ) -> Optional[BaseModel]:
        """Build a model instance from a raw document."""
        if not data:
            return None
        return self.model.from_dict(data)

    def _field_for_path(self, key: str):
        """Resolve a (possibly dotted) condition key to the field it targets, walking through embedded values."""
        model_cls = self.model
        f = None
        for segment in key.split('.'):
            if model_cls is None:
                return None
            f, owner = self._resolve_segment(model_cls, segment)
            if f is None:
                return None
            model_cls = related_model(f, owner) if is_embedded(f) else None
        return f

    @classmethod
    def _resolve_segment(cls, model_cls, segment: str):
        """
        Find the field named by one key segment, including `<field>_<sub_field>`
        keys of embedded values stored inline. Returns (field, declaring model).
        """
        f = model_cls.get_field(segment)
        if f is not None:
            return f, model_cls
        for candidate in fields(model_cls):
            prefix = f"{candidate.name}_"
            if (is_embedded(candidate) and not candidate.metadata.get('object', True)
                    and segment.startswith(prefix)):
                found = cls._resolve_segment(related_model(candidate, model_cls), segment[len(prefix):])
                if found[0] is not None:
                    return found
        return None, None

    @staticmethod
    def _to_object_id(value: Any) -> Any:
        if isinstance(value, BaseModel):
            return value._id
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        return value

    def _normalize_id_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                op: ([self._to_object_id(v) for v in operand]
                     if isinstance(operand, (list, tuple)) else self._to_object_id(operand))
                for op, operand in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._to_object_id(v) for v in value]
        return self._to_object_id(value)

    def _normalize_conditions(self, conditions: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Translate a filter written against the model into a MongoDB filter.

        `id` becomes `_id`; id strings and model instances given for `_id` or
        for relation fields become ObjectIds, including inside operator lists
        such as `$in`.
        """
        if not conditions:
            return {}
        result: Dict[str, Any] = {}
        for key, value in conditions.items():
            if key == 'id':
                key = '_id'
            if key.startswith('$'):
                if isinstance(value, list):
                    value = [self._normalize_conditions(c) for c in value]
                result[key] = value
                continue
            f = self._field_for_path(key)
            if key == '_id' or (f is not None and is_relation(f)):
                value = self._normalize_id_value(value)
            result[key] = value
        return result

    def find_one(
        self,
        conditions: Dict[str, Any],
        populate: List[str] = None
    ) -> Optional[BaseModel]:
        raise NotImplementedError

    def find_one_or_fail(
        self,
        conditions: Dict[str, Any],
        populate: List[str] = None
    ) -> BaseModel:
        """
        Same as find_one(), but raises NotFoundError when nothing matches.

        :param conditions: filter conditions
        :param populate: dotted relation paths to load
        :return: the matching model instance
        """
        instance = self.find_one(conditions, populate=populate)
        if instance is None:
            raise NotFoundError(self.model.__name__, conditions)
        return instance
