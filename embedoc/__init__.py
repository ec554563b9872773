"""
embedoc: dataclass entities with embedded values and references, mapped to MongoDB
"""

from .errors import ContextError, MapperConfigError, NotFoundError, PopulatePathError
from .models import BaseModel, EmbeddedModel, ModelValidationError, embedded, indexed, many_to_many, reference
from .config import MapperConfig
from .mapper import DocumentMapper, EntityManager, SchemaGenerator
