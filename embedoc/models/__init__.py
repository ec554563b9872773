"""
Models for embedoc
"""

from .document import DocumentModel, ModelValidationError, related_model, resolve_model
from .base_model import BaseModel
from .embedded_model import EmbeddedModel
from .fields import embedded, indexed, many_to_many, reference
