import logging
from dataclasses import Field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

from bson import ObjectId
from dateutil.parser import isoparse

from embedoc.models.fields import (
    FIELD_TYPE_EMBEDDED,
    FIELD_TYPE_M2M,
    FIELD_TYPE_REFERENCE,
    field_type,
    is_embedded,
)

logger = logging.getLogger(__name__)

_model_registry: Dict[str, List[type]] = {}


def register_model(cls: type):
    candidates = _model_registry.setdefault(cls.__name__, [])
    # a re-declaration in the same module replaces the earlier class
    candidates[:] = [c for c in candidates if c.__module__ != cls.__module__]
    candidates.append(cls)


def resolve_model(model_ref, owner: Optional[type] = None):
    """
    Return the model class for `model_ref`, which may be a class or the name of a declared model.

    A name declared in several modules resolves to the one in the module of
    `owner`, the class that declares the field.
    """
    if not isinstance(model_ref, str):
        return model_ref

    candidates = _model_registry.get(model_ref, [])
    if owner is not None:
        same_module = [c for c in candidates if c.__module__ == owner.__module__]
        if same_module:
            return same_module[-1]
    if not candidates:
        raise ImportError(f"Unable to resolve model class {model_ref}.")
    if len(candidates) > 1:
        raise ImportError(
            f"Model name {model_ref} is declared in several modules; reference the class instead.")
    return candidates[0]


def related_model(f: Field, owner: Optional[type] = None):
    """Return the target model class of an embedded or relation field declared on `owner`."""
    return resolve_model(f.metadata.get('relationship', {}).get('model'), owner)


class ModelValidationError(Exception):
    """
    Exception raised when one or more validation errors occur in the model.

    Attributes:
        errors (list): A list of error messages returned from validation methods.
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        elif not isinstance(errors, list):
            raise ValueError("Errors should be a string or a list of strings")
        self.errors = errors
        super().__init__(self.format_errors())

    def format_errors(self):
        return "\n".join(self.errors)

    def __str__(self):
        return self.format_errors()


class DocumentModel:
    """
    Shared document mapping for entities (BaseModel) and embedded values (EmbeddedModel).

    Subclasses are dataclasses. Every subclass is registered by class name so
    relations can name their target model as a string before it is declared.
    """

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        register_model(cls)

    @classmethod
    def fields(cls) -> List[str]:
        """
        Get a list of field names for this model.

        Returns:
            List[str]: A list of field names.
        """
        return [f.name for f in fields(cls)]

    @classmethod
    def get_field(cls, name: str) -> Optional[Field]:
        return next((f for f in fields(cls) if f.name == name), None)

    def _coerce_fields(self):
        """Turn constructor-style values (dicts, ids, id strings) in embedded and relation fields into models."""
        for f in fields(self):
            ftype = field_type(f)
            if ftype not in (FIELD_TYPE_EMBEDDED, FIELD_TYPE_M2M, FIELD_TYPE_REFERENCE):
                continue
            value = getattr(self, f.name)
            model_cls = related_model(f, type(self))
            if ftype == FIELD_TYPE_EMBEDDED:
                if f.metadata.get('array'):
                    value = [model_cls.from_dict(v) for v in value or []]
                else:
                    value = model_cls.from_dict(value)
            elif ftype == FIELD_TYPE_M2M:
                value = [model_cls.reference_from(v) for v in value or []]
            else:
                value = model_cls.reference_from(value)
            setattr(self, f.name, value)

    def _convert_reference(self, v, serialize: bool):
        if v is None:
            return None
        if isinstance(v, DocumentModel):
            if serialize:
                return v.serialize() if v.is_initialized() else v.id
            if v._id is None:
                raise ValueError(
                    f"Cannot store a reference to an unsaved {type(v).__name__}")
            return v._id
        if isinstance(v, ObjectId):
            return str(v) if serialize else v
        if isinstance(v, str):
            return v if serialize else ObjectId(v)
        return v

    def _convert_value(self, v, serialize: bool):
        if isinstance(v, Enum):
            return v.value
        if isinstance(v, list):
            return [self._convert_value(i, serialize) for i in v]
        if serialize and isinstance(v, datetime):
            return v.isoformat()
        if serialize and isinstance(v, ObjectId):
            return str(v)
        return v

    def _to_dict(self, serialize: bool) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            ftype = field_type(f)
            if ftype == FIELD_TYPE_EMBEDDED:
                if f.metadata.get('array'):
                    result[f.name] = [v._to_dict(serialize) for v in value or []]
                elif f.metadata.get('object', True) or serialize:
                    result[f.name] = value._to_dict(serialize) if value is not None else None
                elif value is not None:
                    # inline embeddable: properties are flattened into the owner with a prefix
                    for k, v in value._to_dict(serialize).items():
                        result[f"{f.name}_{k}"] = v
            elif ftype == FIELD_TYPE_M2M:
                result[f.name] = [self._convert_reference(v, serialize) for v in value or []]
            elif ftype == FIELD_TYPE_REFERENCE:
                result[f.name] = self._convert_reference(value, serialize)
            else:
                result[f.name] = self._convert_value(value, serialize)
        return result

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert this model to the document stored in MongoDB.

        Embedded values become sub-documents (or prefixed properties when
        inlined) and references become ObjectIds.
        """
        return self._to_dict(serialize=False)

    def serialize(self) -> Dict[str, Any]:
        """
        Convert this model to a JSON-friendly dict.

        Identifiers are strings, datetimes are ISO strings, unloaded references
        are their id string and populated references are nested objects.
        """
        return self._to_dict(serialize=True)

    @classmethod
    def _collect_inlined(cls, f: Field, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        prefix = f"{f.name}_"
        names = set(related_model(f, cls).fields())
        inlined = {
            k[len(prefix):]: v for k, v in data.items()
            if k.startswith(prefix) and k[len(prefix):] in names
        }
        return inlined or None

    @classmethod
    def _field_hints(cls) -> Dict[str, Any]:
        try:
            return get_type_hints(cls)
        except NameError:
            # string annotations naming classes that are not module globals, e.g. models declared in a function
            return {f.name: f.type for f in fields(cls) if not isinstance(f.type, str)}

    @classmethod
    def _convert_enum_or_datetime(cls, v, expected_type) -> Any:
        """Convert stored values (enum values, ISO strings) to enum or datetime types."""
        if v is None or expected_type is None:
            return v

        if get_origin(expected_type) is Union:
            for arg in get_args(expected_type):
                if arg is type(None):
                    continue
                converted = cls._convert_enum_or_datetime(v, arg)
                if converted is not v:
                    return converted
            return v

        if isinstance(expected_type, type) and issubclass(expected_type, Enum):
            if isinstance(v, expected_type):
                return v
            try:
                return expected_type(v)
            except ValueError:
                return v

        if expected_type is datetime and isinstance(v, str):
            try:
                return isoparse(v)
            except (ValueError, TypeError):
                logger.info(f"'{v}' is not a valid ISO datetime.")
                return v

        return v

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        """
        Load a model from a stored document or from constructor-style data.

        Unknown keys are ignored. Relation fields accept ObjectIds, id
        strings, dicts or model instances.
        """
        if data is None or isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise TypeError(
                f"Cannot build {cls.__name__} from {type(data).__name__}")

        hints = cls._field_hints()
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if not f.init:
                continue
            if f.name in data:
                value = data[f.name]
            elif is_embedded(f) and not f.metadata.get('object', True):
                value = cls._collect_inlined(f, data)
                if value is None:
                    continue
            else:
                continue

            if field_type(f) is None and value is not None:
                value = cls._convert_enum_or_datetime(value, hints.get(f.name))
            kwargs[f.name] = value

        return cls(**kwargs)

    def _collect_errors(self) -> List[str]:
        errors = []
        for f in fields(self):
            validator = getattr(self, f"validate_{f.name}", None)
            if callable(validator):
                error = validator()
                if error:
                    errors.append(error)
            if is_embedded(f):
                value = getattr(self, f.name)
                items = value if f.metadata.get('array') else [value]
                for item in items or []:
                    if item is not None:
                        errors.extend(item._collect_errors())
        return errors

    def validate(self):
        """
        Validate all fields by calling corresponding `validate_<field_name>` methods if defined,
        descending into embedded values. Raise `ModelValidationError` if any validations fail.
        """
        errors = self._collect_errors()
        if errors:
            raise ModelValidationError(errors)

    def prepare_for_save(self):
        """Prepare this model for saving to the database."""
        self.validate()
