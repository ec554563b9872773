"""
Mapper, entity manager and schema generator
"""

from .entity_manager import EntityManager
from .schema_generator import SchemaGenerator
from .mapper import DocumentMapper
