"""
Tests for DocumentMapper, EntityManager and SchemaGenerator.

The MongoDB adapter is replaced by a MagicMock; transactions run their
operations directly.
"""
import logging
import unittest
from dataclasses import dataclass
from unittest.mock import MagicMock, call, patch

from bson import ObjectId
from pymongo import ASCENDING, errors

from embedoc import ContextError, DocumentMapper, MapperConfig, MapperConfigError
from embedoc.mapper import SchemaGenerator
from embedoc.models import BaseModel, reference
from sample_models import (
    ALL_ENTITIES,
    Address,
    Author,
    Book,
    EmbeddedEntity,
    OtherEntity,
    ParentEntity,
)


def _mock_adapter():
    adapter = MagicMock()
    adapter.run_transaction.side_effect = lambda operations: [op() for op in operations]
    return adapter


class DocumentMapperInitTestCase(unittest.TestCase):
    """
    Entity discovery and options
    """

    def setUp(self):
        self.adapter = _mock_adapter()

    def test_init_connects(self):
        mapper = DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter)
        self.adapter.__enter__.assert_called_once()
        self.assertTrue(mapper.is_connected())
        self.assertEqual(mapper.entities, ALL_ENTITIES)

    def test_init_with_config_and_overrides(self):
        config = MapperConfig(entities=ALL_ENTITIES, db_name="db")
        mapper = DocumentMapper.init(config, adapter=self.adapter, allow_global_context=True)
        self.assertEqual(mapper.config.db_name, "db")
        self.assertTrue(mapper.config.allow_global_context)

    def test_no_entities(self):
        with self.assertRaises(MapperConfigError):
            DocumentMapper.init(entities=[], adapter=self.adapter)

    def test_only_embedded_entities(self):
        with self.assertRaises(MapperConfigError):
            DocumentMapper.init(entities=[Address], adapter=self.adapter)

    def test_undiscovered_embedded_model(self):
        with self.assertRaises(MapperConfigError) as ctx:
            DocumentMapper.init(entities=[ParentEntity, OtherEntity], adapter=self.adapter)
        self.assertIn("EmbeddedEntity", str(ctx.exception))

    def test_undiscovered_relation_target(self):
        with self.assertRaises(MapperConfigError) as ctx:
            DocumentMapper.init(entities=[ParentEntity, EmbeddedEntity], adapter=self.adapter)
        self.assertIn("OtherEntity", str(ctx.exception))

    def test_not_a_model(self):
        with self.assertRaises(MapperConfigError):
            DocumentMapper.init(entities=[OtherEntity, dict], adapter=self.adapter)

    def test_relation_to_embedded_model_is_rejected(self):
        @dataclass(kw_only=True)
        class WrongTarget(BaseModel):
            address: Address = reference(Address)

        with self.assertRaises(MapperConfigError):
            DocumentMapper.init(entities=[WrongTarget, Address, Author], adapter=self.adapter)

    def test_unknown_option(self):
        with self.assertRaises(MapperConfigError):
            DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter, no_such_option=True)

    def test_connection_failure(self):
        self.adapter.__enter__.side_effect = ConnectionError("MongoDB ping failed: timeout")
        with self.assertRaises(ConnectionError):
            DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter)
        # the caller owns the adapter it passed in
        self.adapter.close.assert_not_called()

    @patch('embedoc.data.mongodb.MongoClient')
    def test_connection_failure_closes_client(self, mock_mongo_client):
        mock_client_instance = MagicMock()
        mock_mongo_client.return_value = mock_client_instance
        mock_client_instance.admin.command.side_effect = errors.ServerSelectionTimeoutError("timed out")

        with self.assertRaises(ConnectionError):
            DocumentMapper.init(entities=ALL_ENTITIES, client_url="mongodb://localhost:27017")

        mock_client_instance.close.assert_called_once()

    def test_init_does_not_modify_given_config(self):
        config = MapperConfig(entities=ALL_ENTITIES, db_name="db")
        mapper = DocumentMapper.init(config, adapter=self.adapter, db_name="other", allow_global_context=True)
        self.assertEqual(mapper.config.db_name, "other")
        self.assertEqual(config.db_name, "db")
        self.assertFalse(config.allow_global_context)

    def test_close(self):
        with DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter) as mapper:
            pass
        self.adapter.close.assert_called_once()
        self.assertFalse(mapper.is_connected())

    def test_debug_enables_query_logging(self):
        logger = logging.getLogger('embedoc')
        level = logger.level
        try:
            DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter, debug=True)
            self.assertEqual(logger.level, logging.DEBUG)
        finally:
            logger.setLevel(level)


class EntityManagerTestCase(unittest.TestCase):
    """
    EntityManager writes and the global context guard
    """

    def setUp(self):
        self.adapter = _mock_adapter()
        self.mapper = DocumentMapper.init(
            entities=ALL_ENTITIES, adapter=self.adapter,
            implicit_transactions=True, allow_global_context=True)

    def test_global_context_disallowed(self):
        mapper = DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter)
        with self.assertRaises(ContextError):
            _ = mapper.em
        em = mapper.fork()
        self.assertIsNot(em, mapper.fork())
        self.assertIs(em.repo(OtherEntity), em.repo(OtherEntity))

    def test_insert_returns_primary_key(self):
        oid = ObjectId()
        self.adapter.insert_one.return_value = oid

        result = self.mapper.em.insert(OtherEntity, {'name': "test"})

        self.assertEqual(result, oid)
        self.adapter.insert_one.assert_called_once_with('other_entity', {'name': "test"})

    def test_insert_runs_in_implicit_transaction(self):
        self.adapter.insert_one.return_value = ObjectId()
        self.mapper.em.insert(OtherEntity, {'name': "test"})
        self.adapter.run_transaction.assert_called_once()

    def test_insert_without_implicit_transactions(self):
        mapper = DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter)
        self.adapter.insert_one.return_value = ObjectId()
        mapper.fork().insert(OtherEntity(name="test"))
        self.adapter.run_transaction.assert_not_called()

    def test_insert_embedded_data(self):
        other_id, parent_id = ObjectId(), ObjectId()
        self.adapter.insert_one.return_value = parent_id

        self.mapper.em.insert(ParentEntity, {
            'embedded_member': {'name': "embedded-test", 'other_entities': [other_id]},
        })

        self.adapter.insert_one.assert_called_once_with('parent_entity', {
            'embedded_member': {'name': "embedded-test", 'other_entities': [other_id]},
        })

    def test_insert_many(self):
        ids = [ObjectId(), ObjectId()]
        self.adapter.insert_many.return_value = ids
        self.assertEqual(self.mapper.em.insert_many(OtherEntity, [{'name': "a"}, OtherEntity(name="b")]), ids)
        self.adapter.run_transaction.assert_called_once()

    def test_repo_of_undiscovered_or_embedded_model(self):
        with self.assertRaises(MapperConfigError):
            self.mapper.em.repo(EmbeddedEntity)

        @dataclass(kw_only=True)
        class Stranger(BaseModel):
            pass

        with self.assertRaises(MapperConfigError):
            self.mapper.em.repo(Stranger)

    def test_find_one_or_fail_with_populate(self):
        other = {'_id': ObjectId(), 'name': "test"}
        self.adapter.get_one.return_value = {
            '_id': ObjectId(),
            'embedded_member': {'name': "embedded-test", 'other_entities': [other['_id']]},
        }
        self.adapter.get_many.return_value = [other]

        parent = self.mapper.em.find_one_or_fail(
            ParentEntity, {'id': str(ObjectId())}, populate=["embedded_member.other_entities"])

        self.assertEqual(parent.embedded_member.other_entities[0].name, "test")

    def test_populate_single_entity(self):
        author = {'_id': ObjectId(), 'name': "author"}
        self.adapter.get_many.return_value = [author]
        book = Book(_id=ObjectId(), title="t", author=author['_id'])

        self.assertIs(self.mapper.em.populate(book, ["author"]), book)
        self.assertEqual(book.author.name, "author")

    def test_remove(self):
        self.adapter.delete_many.return_value = 1
        entity = OtherEntity(_id=ObjectId(), name="test")
        self.assertTrue(self.mapper.em.remove(entity))
        self.adapter.run_transaction.assert_called_once()

    def test_transactional(self):
        self.adapter.insert_one.side_effect = [ObjectId(), ObjectId()]

        ids = self.mapper.em.transactional(
            lambda em: [em.insert(OtherEntity, {'name': "a"}), em.insert(OtherEntity, {'name': "b"})])

        self.assertEqual(len(ids), 2)
        # the outer transaction plus one join per write
        self.assertEqual(self.adapter.run_transaction.call_count, 3)

    def test_count(self):
        self.adapter.get_count.return_value = 4
        self.assertEqual(self.mapper.em.count(OtherEntity, {'name': "a"}), 4)


class SchemaGeneratorTestCase(unittest.TestCase):
    """
    Collections and indexes
    """

    def setUp(self):
        self.adapter = _mock_adapter()
        self.mapper = DocumentMapper.init(entities=ALL_ENTITIES, adapter=self.adapter)

    def test_index_specs(self):
        self.assertEqual(list(SchemaGenerator.index_specs(OtherEntity)), [('name', False)])
        self.assertEqual(list(SchemaGenerator.index_specs(Author)), [('name', True), ('address_city', False)])
        self.assertEqual(list(SchemaGenerator.index_specs(ParentEntity)), [])

    def test_create_schema(self):
        self.adapter.create_collection.side_effect = lambda name: name != 'authors'

        created = self.mapper.schema.create_schema()

        self.assertEqual(created, ['parent_entity', 'other_entity', 'book'])
        self.assertEqual(self.adapter.create_collection.call_count, 4)
        self.assertEqual(self.adapter.create_index.call_count, 3)

    def test_ensure_indexes(self):
        self.adapter.create_index.side_effect = lambda table, columns, name, unique=False: name

        names = self.mapper.get_schema_generator().ensure_indexes()

        self.assertEqual(names, ['name_1', 'name_unique', 'address_city_1'])
        self.adapter.create_index.assert_has_calls([
            call('other_entity', [('name', ASCENDING)], 'name_1', unique=False),
            call('authors', [('name', ASCENDING)], 'name_unique', unique=True),
            call('authors', [('address_city', ASCENDING)], 'address_city_1', unique=False),
        ])

    def test_drop_and_clear(self):
        schema = self.mapper.schema
        schema.drop_schema()
        schema.clear_database()
        self.assertEqual(self.adapter.drop_collection.call_count, 4)
        self.adapter.delete_many.assert_any_call('book', {})


if __name__ == '__main__':
    unittest.main()
