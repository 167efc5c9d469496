"""
Schema definition for the history index.

Field kinds follow the usual inverted index split:
- TextField: analyzed full-text fields (title, text)
- KeywordField: whole value indexed as one lower-cased term (url, domain)
- NumericField: integer values for range filters and sorting (added)
- StoredField: kept with the document but never searchable (html, favicon)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hister.search.analyzers import Analyzer, get_analyzer


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"
    NUMERIC = "numeric"
    STORED = "stored"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    stored: bool = True
    indexed: bool = True

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @property
    def analyzer_key(self) -> str | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "name": self.name,
            "type": self.field_type.value,
            "stored": self.stored,
            "indexed": self.indexed,
        }
        if self.analyzer_key:
            data["analyzer"] = self.analyzer_key
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaField:
        field_type = FieldType(data["type"])
        if field_type == FieldType.TEXT:
            return TextField(data["name"], analyzer_name=data.get("analyzer", "standard"))
        if field_type == FieldType.KEYWORD:
            return KeywordField(data["name"])
        if field_type == FieldType.NUMERIC:
            return NumericField(data["name"])
        if field_type == FieldType.STORED:
            return StoredField(data["name"])
        msg = f"Unknown field type: {field_type}"
        raise ValueError(msg)


@dataclass(frozen=True)
class TextField(SchemaField):
    """Analyzed text field. Positions are kept so phrases can be matched."""

    analyzer_name: str = "standard"

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT

    @property
    def analyzer_key(self) -> str:
        return self.analyzer_name


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """The whole value is one lower-cased term, so ``*`` wildcards see all of it."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD

    @property
    def analyzer_key(self) -> str:
        return "keyword"


@dataclass(frozen=True)
class NumericField(SchemaField):
    """Integer field used for range filters and sorting."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.NUMERIC


@dataclass(frozen=True)
class StoredField(SchemaField):
    """Stored-only field (not indexed)."""

    stored: bool = field(default=True, init=False)
    indexed: bool = field(default=False, init=False)

    @property
    def field_type(self) -> FieldType:
        return FieldType.STORED


@dataclass
class Schema:
    """Fields of an index plus the name of the unique key field."""

    fields: list[SchemaField]
    unique_field: str = "url"

    def __post_init__(self) -> None:
        self._field_map: dict[str, SchemaField] = {f.name: f for f in self.fields}
        if self.unique_field not in self._field_map:
            msg = f"Unique field '{self.unique_field}' not found in schema"
            raise ValueError(msg)
        self._analyzers: dict[str, Analyzer] = {
            f.name: get_analyzer(f.analyzer_key) for f in self.fields if f.indexed and f.analyzer_key
        }

    def __getitem__(self, name: str) -> SchemaField:
        return self._field_map[name]

    def __contains__(self, name: str) -> bool:
        return name in self._field_map

    def __iter__(self):
        return iter(self.fields)

    @property
    def indexed_fields(self) -> list[SchemaField]:
        """Fields with postings (text and keyword)."""
        return [f for f in self.fields if f.indexed and f.analyzer_key]

    @property
    def numeric_fields(self) -> list[NumericField]:
        return [f for f in self.fields if isinstance(f, NumericField)]

    def analyzer(self, field_name: str) -> Analyzer:
        """Return the analyzer for an indexed field; raises KeyError otherwise."""
        return self._analyzers[field_name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "unique_field": self.unique_field,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        return cls(
            fields=[SchemaField.from_dict(f) for f in data["fields"]],
            unique_field=data.get("unique_field", "url"),
        )


def create_history_schema() -> Schema:
    """
    Create the schema of the history index.

    Fields:
    - url: unique key, one lower-cased term
    - domain: host part of the URL, one lower-cased term
    - title, text: analyzed page content
    - html, favicon: stored only
    - added: Unix timestamp of first indexing
    """
    return Schema(
        unique_field="url",
        fields=[
            KeywordField("url"),
            KeywordField("domain"),
            TextField("title"),
            TextField("text"),
            StoredField("html"),
            StoredField("favicon"),
            NumericField("added"),
        ],
    )
