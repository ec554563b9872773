import copy
import logging
from dataclasses import fields, is_dataclass
from typing import List, Optional

from embedoc.config import MapperConfig
from embedoc.data import MongoDBAdapter
from embedoc.errors import ContextError, MapperConfigError
from embedoc.mapper.entity_manager import EntityManager
from embedoc.mapper.schema_generator import SchemaGenerator
from embedoc.models import BaseModel, EmbeddedModel, related_model
from embedoc.models.fields import is_embedded, is_relation

logger = logging.getLogger(__name__)


class DocumentMapper:
    """
    A configured mapper: the entity metadata, the MongoDB adapter, a global
    EntityManager and the schema generator.

    Use `DocumentMapper.init(...)` to build one; it validates the entities and
    checks the connection.
    """

    def __init__(self, config: MapperConfig, adapter: Optional[MongoDBAdapter] = None):
        self.config = config
        self.entities: List[type] = self._discover_entities(config.entities)
        self.adapter = adapter or MongoDBAdapter(
            config.client_url, config.db_name, **config.client_options)
        self._em = EntityManager(self)
        self._schema: Optional[SchemaGenerator] = None
        self._connected = False

        if not logging.getLogger().hasHandlers():
            logging.basicConfig(
                level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        if config.debug:
            logging.getLogger('embedoc').setLevel(logging.DEBUG)

    @classmethod
    def init(cls, config: Optional[MapperConfig] = None, adapter: Optional[MongoDBAdapter] = None,
             **options) -> 'DocumentMapper':
        """
        Build a mapper and connect it.

        Args:
            config: A MapperConfig; when omitted one is built from `options`.
            adapter: An adapter to use instead of one built from the config.
            **options: MapperConfig arguments, applied over a copy of `config` when both are given.

        Raises:
            MapperConfigError: On invalid options or entity declarations.
            ConnectionError: If the database cannot be reached.
        """
        if config is None:
            try:
                config = MapperConfig(**options)
            except TypeError as e:
                raise MapperConfigError(str(e)) from e
        else:
            config = copy.copy(config)
            for key, value in options.items():
                if not hasattr(config, key):
                    raise MapperConfigError(f"Unknown mapper option '{key}'")
                setattr(config, key, value)
        config.validate()

        mapper = cls(config, adapter)
        try:
            mapper.connect()
        except Exception:
            # a caller-supplied adapter stays open
            if adapter is None:
                mapper.adapter.close()
            raise
        return mapper

    @staticmethod
    def _discover_entities(entities) -> List[type]:
        discovered = list(entities or [])
        for entity in discovered:
            if not (isinstance(entity, type) and issubclass(entity, (BaseModel, EmbeddedModel))
                    and is_dataclass(entity)):
                raise MapperConfigError(
                    f"{entity!r} is not a dataclass extending BaseModel or EmbeddedModel")
        if not any(issubclass(e, BaseModel) for e in discovered):
            raise MapperConfigError("No entities were discovered")

        for entity in discovered:
            for f in fields(entity):
                if not (is_embedded(f) or is_relation(f)):
                    continue
                try:
                    target = related_model(f, entity)
                except ImportError as e:
                    raise MapperConfigError(f"{entity.__name__}.{f.name}: {e}") from e
                expected = EmbeddedModel if is_embedded(f) else BaseModel
                if not (isinstance(target, type) and issubclass(target, expected)):
                    raise MapperConfigError(
                        f"{entity.__name__}.{f.name} must target a {expected.__name__} subclass, got {target!r}")
                if target not in discovered:
                    raise MapperConfigError(
                        f"Entity '{target.__name__}' was not discovered, please make sure to provide it in "
                        f"'entities' when initializing the mapper (used in {entity.__name__}.{f.name})")
        return discovered

    def connect(self) -> None:
        with self.adapter:
            pass
        self._connected = True
        logger.info("MongoDB database '%s' connected", self.config.db_name)

    def is_connected(self) -> bool:
        if not self._connected:
            return False
        try:
            with self.adapter:
                return True
        except ConnectionError:
            return False

    def close(self) -> None:
        self.adapter.close()
        self._connected = False
        logger.info("MongoDB database '%s' connection closed", self.config.db_name)

    def __enter__(self) -> 'DocumentMapper':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def em(self) -> EntityManager:
        """
        The global EntityManager, available only with `allow_global_context`.
        """
        if not self.config.allow_global_context:
            raise ContextError(
                "Using the global EntityManager is disallowed. Use mapper.fork() to get a "
                "dedicated EntityManager, or enable allow_global_context.")
        return self._em

    def fork(self) -> EntityManager:
        return EntityManager(self)

    def get_schema_generator(self) -> SchemaGenerator:
        if self._schema is None:
            self._schema = SchemaGenerator(self)
        return self._schema

    @property
    def schema(self) -> SchemaGenerator:
        return self.get_schema_generator()
