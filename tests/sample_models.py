"""
Models shared by the unit tests.

- OtherEntity / EmbeddedEntity / ParentEntity: the embedded many-to-many shape
- Author / Address: unique index, inline embedded value holding a reference
- Book / Chapter: enum and datetime fields, reference, top-level many-to-many,
  array of embedded values, validation hooks
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from embedoc.models import BaseModel, EmbeddedModel, embedded, indexed, many_to_many, reference


@dataclass(kw_only=True)
class EmbeddedEntity(EmbeddedModel):
    name: Optional[str] = None
    other_entities: List['OtherEntity'] = many_to_many('OtherEntity')


@dataclass(kw_only=True)
class ParentEntity(BaseModel):
    embedded_member: Optional[EmbeddedEntity] = embedded(EmbeddedEntity)


@dataclass(kw_only=True)
class OtherEntity(BaseModel):
    name: str = indexed(default="")


class Status(Enum):
    DRAFT = 'draft'
    PUBLISHED = 'published'


@dataclass(kw_only=True)
class Address(EmbeddedModel):
    city: str = indexed(default="")
    owner: Optional['Author'] = reference('Author')


@dataclass(kw_only=True)
class Author(BaseModel):
    collection_name = 'authors'

    name: str = indexed(default="", unique=True)
    address: Optional[Address] = embedded(Address, as_object=False)


@dataclass(kw_only=True)
class Chapter(EmbeddedModel):
    heading: str = ""
    reviewers: List[Author] = many_to_many(Author)

    def validate_heading(self):
        if not self.heading:
            return "Chapter heading must not be empty"


@dataclass(kw_only=True)
class Book(BaseModel):
    title: str
    status: Status = Status.DRAFT
    published_on: Optional[datetime] = None
    author: Optional[Author] = reference(Author)
    co_authors: List[Author] = many_to_many(Author)
    chapters: List[Chapter] = embedded(Chapter, array=True)

    def validate_title(self):
        if not self.title:
            return "Book title must not be empty"


ALL_ENTITIES = [ParentEntity, OtherEntity, EmbeddedEntity, Author, Address, Book, Chapter]
