"""
Config classes that read settings from the environment and/or a .env file.
"""
import os
import json
from abc import abstractmethod
from typing import Any, Dict, List, Optional
import logging
from dotenv import load_dotenv

from embedoc.errors import MapperConfigError

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_URL = "mongodb://localhost:27017"
DEFAULT_DB_NAME = "test"

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


class BaseConfig():
    """
    Config class that uses a .env file and the process environment.
    """
    def __init__(self):
        load_dotenv()
        # Get all environment variables and store them in a dictionary
        self.env_vars = {key: os.getenv(key) for key in os.environ}

    def get_env_vars(self) -> dict:
        """
        Return the dictionary containing all environment variables
        """
        return self.env_vars

    def get_env_var(self, var_name: str, default: Any = None):
        """
        Retrieve the value of the specified environment variable
        Args:
            var_name (str) : Name of the env var to fetch
            default : Value returned when the variable is not set
        """
        if var_name in self.env_vars.keys():
            return self.env_vars[var_name]
        logger.debug("Variable %s not found.", var_name)
        return default

    def get_bool_var(self, var_name: str, default: bool = False) -> bool:
        """
        Returns a flag var as bool; 1/true/yes/on (any case) are true
        """
        value = self.get_env_var(var_name)
        if value is None:
            return default
        return str(value).strip().lower() in TRUE_VALUES

    def get_var_as_list(self, var_name: str) -> Optional[List[str]]:
        """
        Returns a comma-delimited var as list
        """
        if var_name in self.env_vars.keys():
            return [env_var.strip() for env_var in self.env_vars[var_name].split(",") if env_var.strip()]
        logger.warning("Warning: var %s not found.", var_name)
        return None

    def convert_var_from_json_string(self, var_name: str) -> bool:
        """
        Converts a json string into a pythonic type
        """
        if var_name in self.env_vars.keys():
            try:
                self.env_vars[var_name] = json.loads(self.env_vars[var_name])
                return True
            except ValueError:
                logger.error("Error: Invalid input format. Please provide a proper json string.")
                return False
        logger.warning("Warning: var %s not found.", var_name)
        return False

    @abstractmethod
    def validate_env_vars(self):
        """
        Abstract method for validation of the env vars.
        """


class MapperConfig(BaseConfig):
    """
    Settings of a DocumentMapper.

    Attributes:
        client_url: MongoDB connection string. Transactions need a replica set,
            e.g. ``mongodb://localhost:27017,localhost:27018,localhost:27019/?replicaSet=rs``.
        db_name: Database name.
        entities: Model classes managed by the mapper, embedded models included.
        implicit_transactions: Run every write of the EntityManager in a transaction.
        allow_global_context: Allow use of the mapper's global EntityManager.
        debug: Log every query at DEBUG level.
        client_options: Extra keyword options for the MongoClient.
    """

    def __init__(
        self,
        client_url: str = DEFAULT_CLIENT_URL,
        db_name: str = DEFAULT_DB_NAME,
        entities: List[type] = None,
        implicit_transactions: bool = False,
        allow_global_context: bool = False,
        debug: bool = False,
        client_options: Dict[str, Any] = None
    ):
        super().__init__()
        self.client_url = client_url
        self.db_name = db_name
        self.entities = list(entities or [])
        self.implicit_transactions = implicit_transactions
        self.allow_global_context = allow_global_context
        self.debug = debug
        self.client_options = dict(client_options or {})

    @classmethod
    def from_env(cls, **overrides) -> 'MapperConfig':
        """
        Build a config from MONGODB_URI, MONGODB_DATABASE, MAPPER_IMPLICIT_TRANSACTIONS,
        MAPPER_ALLOW_GLOBAL_CONTEXT, MAPPER_DEBUG and MAPPER_CLIENT_OPTIONS (JSON).
        Keyword arguments override the environment.
        """
        config = cls()
        config.validate_env_vars()
        config.client_url = config.get_env_var('MONGODB_URI', DEFAULT_CLIENT_URL)
        config.db_name = config.get_env_var('MONGODB_DATABASE', DEFAULT_DB_NAME)
        config.implicit_transactions = config.get_bool_var('MAPPER_IMPLICIT_TRANSACTIONS')
        config.allow_global_context = config.get_bool_var('MAPPER_ALLOW_GLOBAL_CONTEXT')
        config.debug = config.get_bool_var('MAPPER_DEBUG')
        if 'MAPPER_CLIENT_OPTIONS' in config.env_vars and config.convert_var_from_json_string('MAPPER_CLIENT_OPTIONS'):
            config.client_options = dict(config.get_env_var('MAPPER_CLIENT_OPTIONS'))

        for key, value in overrides.items():
            if not hasattr(config, key):
                raise MapperConfigError(f"Unknown mapper option '{key}'")
            setattr(config, key, value)
        if 'entities' in overrides:
            config.entities = list(config.entities or [])
        return config

    def validate_env_vars(self):
        """
        Checks that MONGODB_URI, when set, is a MongoDB connection string.
        """
        uri = self.get_env_var('MONGODB_URI')
        if uri and not uri.startswith(('mongodb://', 'mongodb+srv://')):
            raise MapperConfigError(f"MONGODB_URI is not a MongoDB connection string: {uri!r}")

    def validate(self):
        """
        Checks the settings that the mapper cannot start without.
        """
        if not self.client_url:
            raise MapperConfigError("No client_url configured")
        if not self.db_name:
            raise MapperConfigError("No db_name configured")
        if not self.entities:
            raise MapperConfigError("No entities were discovered")
