import logging
from dataclasses import fields
from typing import Iterator, List, Tuple

from pymongo import ASCENDING

from embedoc.models import BaseModel, related_model
from embedoc.models.fields import is_embedded, is_relation

logger = logging.getLogger(__name__)


class SchemaGenerator:
    """Creates and drops the collections and indexes of a mapper's entities."""

    def __init__(self, mapper):
        self.mapper = mapper
        self.adapter = mapper.adapter

    def _entities(self) -> List[type]:
        return [e for e in self.mapper.entities if issubclass(e, BaseModel)]

    @classmethod
    def index_specs(cls, model_cls, prefix: str = '') -> Iterator[Tuple[str, bool]]:
        """
        Yield (document path, unique) for every field declared with `indexed()`,
        including fields of embedded values.
        """
        for f in fields(model_cls):
            if is_embedded(f):
                separator = '.' if f.metadata.get('object', True) else '_'
                yield from cls.index_specs(related_model(f, model_cls), f"{prefix}{f.name}{separator}")
            elif not is_relation(f) and f.metadata.get('index'):
                yield f"{prefix}{f.name}", bool(f.metadata.get('unique'))

    def create_schema(self) -> List[str]:
        """
        Create the collection of every entity that does not have one yet, then ensure indexes.

        Returns:
            List[str]: Names of the collections that were created.
        """
        created = []
        with self.adapter:
            for entity in self._entities():
                name = entity.get_collection_name()
                if self.adapter.create_collection(name):
                    created.append(name)
        logger.info("Created collections: %s", created)
        self.ensure_indexes()
        return created

    def drop_schema(self) -> None:
        with self.adapter:
            for entity in self._entities():
                self.adapter.drop_collection(entity.get_collection_name())
        logger.info("Dropped collections of %d entities", len(self._entities()))

    def clear_database(self) -> None:
        """Delete every document of every entity collection."""
        with self.adapter:
            for entity in self._entities():
                self.adapter.delete_many(entity.get_collection_name(), {})

    def refresh_database(self) -> None:
        self.drop_schema()
        self.create_schema()

    def ensure_indexes(self) -> List[str]:
        """
        Create the declared single-field indexes, named `<path>_1` or `<path>_unique`.

        Returns:
            List[str]: Names of the indexes.
        """
        names = []
        with self.adapter:
            for entity in self._entities():
                for path, unique in self.index_specs(entity):
                    index_name = f"{path}_unique" if unique else f"{path}_1"
                    names.append(self.adapter.create_index(
                        entity.get_collection_name(), [(path, ASCENDING)], index_name, unique=unique))
        return names
