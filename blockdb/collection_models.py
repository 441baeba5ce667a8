"""Descriptions of collections: schemas, settings, statistics and metadata."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Self

DEFAULT_MAX_DOCUMENT_SIZE = 16 * 1024 * 1024
DEFAULT_REPLICATION_FACTOR = 3


def _now_seconds() -> int:
    return int(time.time())


class FieldType(Enum):
    STRING = "String"
    INTEGER = "Integer"
    FLOAT = "Float"
    BOOLEAN = "Boolean"
    ARRAY = "Array"
    OBJECT = "Object"
    BINARY = "Binary"
    TIMESTAMP = "Timestamp"


class ReadConcern(Enum):
    LOCAL = "Local"
    MAJORITY = "Majority"
    LINEARIZABLE = "Linearizable"


_RULE_KINDS: dict[str, type] = {
    "MinLength": int,
    "MaxLength": int,
    "Pattern": str,
    "MinValue": float,
    "MaxValue": float,
    "OneOf": tuple,
}


@dataclass(frozen=True)
class ValidationRule:
    """A constraint on a field value, such as ``ValidationRule("MinLength", 1)``."""

    kind: str
    value: Any

    def __post_init__(self) -> None:
        expected = _RULE_KINDS.get(self.kind)
        if expected is None:
            raise ValueError(f"unknown validation rule {self.kind!r}")
        if expected is tuple:
            object.__setattr__(self, "value", tuple(str(item) for item in self.value))
        elif expected is float:
            object.__setattr__(self, "value", float(self.value))
        elif expected is int:
            if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value < 0:
                raise ValueError(f"{self.kind} needs a non-negative integer")
        elif not isinstance(self.value, str):
            raise ValueError(f"{self.kind} needs a string")


@dataclass(frozen=True)
class WriteConcern:
    """How many nodes must acknowledge a write; ``Custom`` carries the count."""

    kind: str = "Acknowledged"
    nodes: int | None = None

    _KINDS = ("Unacknowledged", "Acknowledged", "Majority", "Custom")

    def __post_init__(self) -> None:
        if self.kind not in self._KINDS:
            raise ValueError(f"unknown write concern {self.kind!r}")
        if (self.kind == "Custom") != (self.nodes is not None):
            raise ValueError("a node count is given with, and only with, a Custom write concern")
        if self.nodes is not None and self.nodes < 0:
            raise ValueError("node count must be non-negative")


@dataclass
class FieldDefinition:
    field_type: FieldType
    required: bool = False
    default_value: str | None = None
    validation_rules: list[ValidationRule] = field(default_factory=list)


@dataclass
class IndexDefinition:
    name: str
    fields: list[str]
    unique: bool = False
    sparse: bool = False


@dataclass
class CollectionSchema:
    version: int = 1
    fields: dict[str, FieldDefinition] = field(default_factory=dict)
    required_fields: list[str] = field(default_factory=list)
    indexes: list[IndexDefinition] = field(default_factory=list)


@dataclass
class CollectionSettings:
    max_document_size: int | None = DEFAULT_MAX_DOCUMENT_SIZE
    ttl_seconds: int | None = None
    compression_enabled: bool = False
    encryption_enabled: bool = False
    replication_factor: int = DEFAULT_REPLICATION_FACTOR
    read_concern: ReadConcern = ReadConcern.LOCAL
    write_concern: WriteConcern = field(default_factory=WriteConcern)


@dataclass
class CollectionStats:
    document_count: int = 0
    total_size_bytes: int = 0
    index_size_bytes: int = 0
    last_updated: int = field(default_factory=_now_seconds)
    operations_count: int = 0


def _without_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _rule_to_dict(rule: ValidationRule) -> dict[str, Any]:
    value = list(rule.value) if isinstance(rule.value, tuple) else rule.value
    return {rule.kind: value}


def _rule_from_dict(data: dict[str, Any]) -> ValidationRule:
    if len(data) != 1:
        raise ValueError("a validation rule has exactly one kind")
    ((kind, value),) = data.items()
    return ValidationRule(kind, value)


def _write_concern_to_toml(concern: WriteConcern) -> Any:
    return {concern.kind: concern.nodes} if concern.kind == "Custom" else concern.kind


def _write_concern_from_toml(data: Any) -> WriteConcern:
    if isinstance(data, str):
        return WriteConcern(data)
    if isinstance(data, dict) and len(data) == 1:
        ((kind, nodes),) = data.items()
        return WriteConcern(kind, nodes)
    raise ValueError(f"invalid write concern {data!r}")


def _field_to_dict(definition: FieldDefinition) -> dict[str, Any]:
    return _without_none(
        {
            "field_type": definition.field_type.value,
            "required": definition.required,
            "default_value": definition.default_value,
            "validation_rules": [_rule_to_dict(rule) for rule in definition.validation_rules],
        }
    )


def _field_from_dict(data: dict[str, Any]) -> FieldDefinition:
    return FieldDefinition(
        field_type=FieldType(data["field_type"]),
        required=data.get("required", False),
        default_value=data.get("default_value"),
        validation_rules=[_rule_from_dict(rule) for rule in data.get("validation_rules", [])],
    )


def _index_to_dict(index: IndexDefinition) -> dict[str, Any]:
    return {"name": index.name, "fields": list(index.fields), "unique": index.unique, "sparse": index.sparse}


def _index_from_dict(data: dict[str, Any]) -> IndexDefinition:
    return IndexDefinition(
        name=data["name"],
        fields=list(data["fields"]),
        unique=data.get("unique", False),
        sparse=data.get("sparse", False),
    )


def _schema_to_dict(schema: CollectionSchema) -> dict[str, Any]:
    return {
        "version": schema.version,
        "fields": {name: _field_to_dict(definition) for name, definition in schema.fields.items()},
        "required_fields": list(schema.required_fields),
        "indexes": [_index_to_dict(index) for index in schema.indexes],
    }


def _schema_from_dict(data: dict[str, Any]) -> CollectionSchema:
    return CollectionSchema(
        version=data.get("version", 1),
        fields={name: _field_from_dict(value) for name, value in data.get("fields", {}).items()},
        required_fields=list(data.get("required_fields", [])),
        indexes=[_index_from_dict(index) for index in data.get("indexes", [])],
    )


def _settings_to_dict(settings: CollectionSettings) -> dict[str, Any]:
    return _without_none(
        {
            "max_document_size": settings.max_document_size,
            "ttl_seconds": settings.ttl_seconds,
            "compression_enabled": settings.compression_enabled,
            "encryption_enabled": settings.encryption_enabled,
            "replication_factor": settings.replication_factor,
            "read_concern": settings.read_concern.value,
            "write_concern": _write_concern_to_toml(settings.write_concern),
        }
    )


def _settings_from_dict(data: dict[str, Any]) -> CollectionSettings:
    return CollectionSettings(
        max_document_size=data.get("max_document_size"),
        ttl_seconds=data.get("ttl_seconds"),
        compression_enabled=data.get("compression_enabled", False),
        encryption_enabled=data.get("encryption_enabled", False),
        replication_factor=data.get("replication_factor", DEFAULT_REPLICATION_FACTOR),
        read_concern=ReadConcern(data.get("read_concern", ReadConcern.LOCAL.value)),
        write_concern=_write_concern_from_toml(data.get("write_concern", "Acknowledged")),
    )


def _stats_to_dict(stats: CollectionStats) -> dict[str, Any]:
    return {
        "document_count": stats.document_count,
        "total_size_bytes": stats.total_size_bytes,
        "index_size_bytes": stats.index_size_bytes,
        "last_updated": stats.last_updated,
        "operations_count": stats.operations_count,
    }


def _stats_from_dict(data: dict[str, Any]) -> CollectionStats:
    return CollectionStats(
        document_count=data.get("document_count", 0),
        total_size_bytes=data.get("total_size_bytes", 0),
        index_size_bytes=data.get("index_size_bytes", 0),
        last_updated=data.get("last_updated", 0),
        operations_count=data.get("operations_count", 0),
    )


@dataclass
class CollectionMetadata:
    """Identity, schema, settings and statistics of one collection."""

    id: str
    name: str
    description: str | None = None
    created_at: int = field(default_factory=_now_seconds)
    created_by: str | None = None
    schema: CollectionSchema | None = None
    settings: CollectionSettings = field(default_factory=CollectionSettings)
    stats: CollectionStats = field(default_factory=CollectionStats)

    @classmethod
    def new(cls, name: str, created_by: str | None = None) -> Self:
        """Metadata for a fresh collection with a ``col_``-prefixed random id."""
        return cls(id=f"col_{uuid.uuid4()}", name=name, created_by=created_by)

    def with_schema(self, schema: CollectionSchema) -> Self:
        return replace(self, schema=schema)

    def with_description(self, description: str) -> Self:
        return replace(self, description=description)

    def with_settings(self, settings: CollectionSettings) -> Self:
        return replace(self, settings=settings)

    def to_dict(self) -> dict[str, Any]:
        """Plain data suitable for TOML; absent optional values are left out."""
        return _without_none(
            {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "created_at": self.created_at,
                "created_by": self.created_by,
                "schema": _schema_to_dict(self.schema) if self.schema is not None else None,
                "settings": _settings_to_dict(self.settings),
                "stats": _stats_to_dict(self.stats),
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Rebuild metadata from the output of :meth:`to_dict`."""
        try:
            schema = data.get("schema")
            return cls(
                id=data["id"],
                name=data["name"],
                description=data.get("description"),
                created_at=data.get("created_at", 0),
                created_by=data.get("created_by"),
                schema=_schema_from_dict(schema) if schema is not None else None,
                settings=_settings_from_dict(data.get("settings", {})),
                stats=_stats_from_dict(data.get("stats", {})),
            )
        except KeyError as missing:
            raise ValueError(f"collection metadata lacks {missing}") from None