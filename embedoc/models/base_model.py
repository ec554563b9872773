import re
from dataclasses import InitVar, dataclass, fields
from typing import Any, Dict, Optional

from bson import ObjectId

from embedoc.models.document import DocumentModel


@dataclass(kw_only=True, eq=False, repr=False)
class BaseModel(DocumentModel):
    """
    A base class for entities stored as top-level documents.

    `_id` is the ObjectId key of the stored document; it stays None until the
    entity is inserted. `id` is its string form and is never stored.

    Entities compare and hash by class and `_id`. An entity loaded as an
    unpopulated reference is *partial*: it carries only its identity and
    reading any other field raises AttributeError.
    """

    collection_name = None

    _id: Optional[ObjectId] = None
    _is_partial: InitVar[bool] = False

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        # @dataclass on the subclass only generates these when they are missing from its __dict__
        for name in ('__eq__', '__hash__', '__repr__'):
            if name not in cls.__dict__:
                setattr(cls, name, getattr(BaseModel, name))

    def __post_init__(self, _is_partial):
        object.__setattr__(self, '_is_partial', _is_partial)
        if isinstance(self._id, str):
            self._id = ObjectId(self._id)
        self._coerce_fields()

    def __getattribute__(self, name):
        """
        Raise AttributeError for every field except `_id` while the instance is partial.
        """
        if name.startswith('_'):
            return object.__getattribute__(self, name)
        instance_dict = object.__getattribute__(self, '__dict__')
        if instance_dict.get('_is_partial') and name in type(self).__dataclass_fields__:
            raise AttributeError(
                f"Attribute '{name}' is not available in a partial instance of {type(self).__name__}.")
        return object.__getattribute__(self, name)

    @property
    def id(self) -> Optional[str]:
        """String form of `_id`."""
        return str(self._id) if self._id is not None else None

    @id.setter
    def id(self, value):
        self._id = ObjectId(value) if value is not None else None

    @classmethod
    def get_collection_name(cls) -> str:
        """`collection_name` if set, else the snake_cased class name."""
        if cls.collection_name:
            return cls.collection_name
        return re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()

    @classmethod
    def partial(cls, _id) -> 'BaseModel':
        """Build an unloaded reference carrying only the identity."""
        instance = object.__new__(cls)
        object.__setattr__(instance, '_is_partial', True)
        object.__setattr__(instance, '_id', _id if isinstance(_id, ObjectId) else ObjectId(_id))
        return instance

    @classmethod
    def reference_from(cls, value: Any) -> Optional['BaseModel']:
        """Build a reference to this model from an instance, ObjectId, id string or dict."""
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, (ObjectId, str)):
            return cls.partial(value)
        if isinstance(value, dict):
            if set(value) <= {'_id', 'id'}:
                return cls.partial(value.get('_id') or value.get('id'))
            return cls.from_dict(value)
        raise TypeError(
            f"Cannot reference {cls.__name__} with a {type(value).__name__}")

    def is_initialized(self) -> bool:
        return not self._is_partial

    def __eq__(self, other):
        if self is other:
            return True
        if type(self) is not type(other) or self._id is None:
            return False
        return self._id == other._id

    def __hash__(self):
        """
        Hash of class and `_id`, or of the object identity while unsaved.

        The hash changes when insert assigns `_id`; sets and dict keys holding
        an unsaved entity must be rebuilt after inserting it.
        """
        if self._id is None:
            return object.__hash__(self)
        return hash((type(self).__name__, self._id))

    def __repr__(self) -> str:
        if self._is_partial:
            return f"{type(self).__name__}(id={self.id!r}, _is_partial=True)"
        parts = [f"id={self.id!r}"]
        for f in fields(self):
            if f.name != '_id':
                parts.append(f"{f.name}={getattr(self, f.name)!r}")
        return f"{type(self).__name__}({', '.join(parts)})"

    def _to_dict(self, serialize: bool) -> Dict[str, Any]:
        if self._is_partial:
            return {'id': self.id} if serialize else {'_id': self._id}
        result = super()._to_dict(serialize)
        result.pop('_id', None)
        if serialize:
            return {'id': self.id, **result}
        if self._id is not None:
            return {'_id': self._id, **result}
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        if isinstance(data, dict) and '_id' not in data and data.get('id') is not None:
            data = {**data, '_id': data['id']}
        return super().from_dict(data)
