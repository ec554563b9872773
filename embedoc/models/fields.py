"""
Field declarations for embedded values, references and indexes
"""
from dataclasses import Field, field
from typing import Any, Dict, Optional, Type, Union

FIELD_TYPE_EMBEDDED = 'embedded'
FIELD_TYPE_M2M = 'm2m_list'
FIELD_TYPE_REFERENCE = 'record_id'

RELATION_FIELD_TYPES = {FIELD_TYPE_M2M, FIELD_TYPE_REFERENCE}

ModelRef = Union[str, Type[Any]]


def _merge_metadata(base: Dict[str, Any], extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if extra:
        base.update(extra)
    return base


def embedded(model: ModelRef, as_object: bool = True, array: bool = False, metadata: Dict[str, Any] = None):
    """
    Declare an embedded value stored inline in the owner document.

    Args:
        model: The EmbeddedModel subclass (or its class name).
        as_object: Store the value as a nested sub-document under the field name.
            When False the embedded properties are inlined into the owner with
            a ``<field>_`` prefix.
        array: Hold a list of embedded values instead of a single one.
    """
    meta = _merge_metadata({
        'field_type': FIELD_TYPE_EMBEDDED,
        'relationship': {'model': model, 'type': 'embedded'},
        'object': as_object or array,
        'array': array,
    }, metadata)
    if array:
        return field(default_factory=list, metadata=meta)
    return field(default=None, metadata=meta)


def many_to_many(model: ModelRef, metadata: Dict[str, Any] = None):
    """Declare a collection of references, stored as a list of ObjectIds."""
    meta = _merge_metadata({
        'field_type': FIELD_TYPE_M2M,
        'relationship': {'model': model, 'type': 'many_to_many'},
    }, metadata)
    return field(default_factory=list, metadata=meta)


def reference(model: ModelRef, metadata: Dict[str, Any] = None):
    """Declare a single reference, stored as an ObjectId."""
    meta = _merge_metadata({
        'field_type': FIELD_TYPE_REFERENCE,
        'relationship': {'model': model, 'type': 'many_to_one'},
    }, metadata)
    return field(default=None, metadata=meta)


def indexed(default: Any = None, unique: bool = False, metadata: Dict[str, Any] = None):
    """Declare a scalar field that gets a single-field index from ensure_indexes()."""
    meta = _merge_metadata({'index': True, 'unique': unique}, metadata)
    return field(default=default, metadata=meta)


def field_type(f: Field) -> Optional[str]:
    return f.metadata.get('field_type')


def is_relation(f: Field) -> bool:
    return field_type(f) in RELATION_FIELD_TYPES


def is_embedded(f: Field) -> bool:
    return field_type(f) == FIELD_TYPE_EMBEDDED
