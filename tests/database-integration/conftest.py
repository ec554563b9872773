"""
Shared pytest fixtures and configuration for database integration tests.

This module provides:
- The MongoDB configuration from environment variables
- A mapper over a clean schema for each test
"""

import os
import pytest

from embedoc import DocumentMapper

from test_models import EmbeddedEntity, OtherEntity, ParentEntity


def get_mongodb_config():
    """
    MongoDB config from environment variables.

    Required env vars:
    - MONGODB_URI (transactions need a replica set, e.g.
      mongodb://localhost:27017,localhost:27018,localhost:27019/?replicaSet=rs)
    - MONGODB_DATABASE

    Returns None if any required env var is missing.
    """
    required_vars = ['MONGODB_URI', 'MONGODB_DATABASE']
    if not all(os.getenv(var) for var in required_vars):
        return None

    return {
        'uri': os.getenv('MONGODB_URI'),
        'database': os.getenv('MONGODB_DATABASE')
    }


@pytest.fixture
def mapper():
    """Initialize a mapper on a freshly created schema and tear it down afterwards."""
    config = get_mongodb_config()
    orm = DocumentMapper.init(
        client_url=config['uri'],
        db_name=config['database'],
        entities=[ParentEntity, OtherEntity, EmbeddedEntity],
        implicit_transactions=True,
        allow_global_context=True,
    )
    schema = orm.get_schema_generator()
    schema.refresh_database()

    yield orm

    schema.drop_schema()
    orm.close()
