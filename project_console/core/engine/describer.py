"""
DESCRIBER - Request-scoped view of the remote schema

One Describer is built per request and thrown away with it. Remote schemas
can change between deployments, and a stale field list would silently pick
the wrong relationship, so nothing here outlives the request.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from project_console.core.engine.errors import EngineError, SchemaNotFound

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    REFERENCE = "reference"
    PICKLIST = "picklist"


# Remote describe types -> our small enum
_TYPE_MAP = {
    "reference": FieldType.REFERENCE,
    "boolean": FieldType.BOOLEAN,
    "date": FieldType.DATE,
    "datetime": FieldType.DATETIME,
    "double": FieldType.NUMBER,
    "currency": FieldType.NUMBER,
    "percent": FieldType.NUMBER,
    "int": FieldType.NUMBER,
    "long": FieldType.NUMBER,
    "picklist": FieldType.PICKLIST,
    "multipicklist": FieldType.PICKLIST,
    "combobox": FieldType.PICKLIST,
}


@dataclass(frozen=True)
class FieldMeta:
    name: str
    label: str
    type: FieldType
    nullable: bool = True
    createable: bool = False
    updateable: bool = False
    reference_targets: tuple = ()
    relationship_name: Optional[str] = None
    calculated: bool = False

    @property
    def is_reference(self) -> bool:
        return self.type == FieldType.REFERENCE

    @classmethod
    def from_describe(cls, raw: Dict[str, Any]) -> "FieldMeta":
        raw_type = str(raw.get("type", "string")).lower()
        return cls(
            name=raw["name"],
            label=raw.get("label") or raw["name"],
            type=_TYPE_MAP.get(raw_type, FieldType.STRING),
            nullable=bool(raw.get("nillable", True)),
            createable=bool(raw.get("createable", False)),
            updateable=bool(raw.get("updateable", False)),
            reference_targets=tuple(raw.get("referenceTo") or ()),
            relationship_name=raw.get("relationshipName"),
            calculated=bool(raw.get("calculated", False) or raw.get("autoNumber", False)),
        )


@dataclass
class ObjectSchema:
    object_name: str
    fields: List[FieldMeta]
    label: str = ""
    _by_name: Dict[str, FieldMeta] = field(init=False, repr=False)

    def __post_init__(self):
        self._by_name = {}
        for f in self.fields:
            if f.name in self._by_name:
                raise ValueError(
                    f"Duplicate field '{f.name}' in schema for {self.object_name}"
                )
            self._by_name[f.name] = f

    @classmethod
    def from_describe(cls, raw: Dict[str, Any]) -> "ObjectSchema":
        return cls(
            object_name=raw["name"],
            label=raw.get("label") or raw["name"],
            fields=[FieldMeta.from_describe(f) for f in raw.get("fields", [])],
        )

    def get(self, name: str) -> Optional[FieldMeta]:
        return self._by_name.get(name)

    def has(self, name: str) -> bool:
        return name in self._by_name

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def reference_fields(self) -> List[FieldMeta]:
        return [f for f in self.fields if f.is_reference]


NAME_FIELD_CANDIDATES = ("Name", "Title", "Subject", "Label")


def name_field(schema: ObjectSchema) -> str:
    """Pick the field holding a record's display name."""
    for candidate in NAME_FIELD_CANDIDATES:
        if schema.has(candidate):
            return candidate
    return "Name"


class Describer:
    """
    Fetches and holds object schemas for the duration of one request.

    Each object name costs at most one remote describe call per Describer.
    Failures are remembered too, so a missing object is not described again within
    the same request.
    """

    def __init__(self, store):
        self.store = store
        self._schemas: Dict[str, Union[ObjectSchema, SchemaNotFound]] = {}
        self.calls = 0

    async def describe(self, object_name: str) -> ObjectSchema:
        cached = self._schemas.get(object_name)
        if isinstance(cached, SchemaNotFound):
            raise cached
        if cached is not None:
            return cached

        self.calls += 1
        try:
            raw = await self.store.describe(object_name)
            schema = ObjectSchema.from_describe(raw)
        except SchemaNotFound as e:
            self._schemas[object_name] = e
            raise
        except (EngineError, KeyError, ValueError) as e:
            error = SchemaNotFound(object_name, str(e))
            error.__cause__ = e
            self._schemas[object_name] = error
            raise error from e

        logger.info(f"Described {object_name}: {len(schema.fields)} fields")
        self._schemas[object_name] = schema
        return schema

    async def first_available(self, candidates: Iterable[str]) -> ObjectSchema:
        """
        Return the schema of the first candidate object that exists.

        Example:
            ["Qualification_Step__c", "Project_Qualification_Step__c"]
            -> schema for whichever the org actually has, in that order
        """
        tried = []
        for object_name in candidates:
            tried.append(object_name)
            try:
                return await self.describe(object_name)
            except SchemaNotFound:
                logger.info(f"{object_name} not available, trying next candidate")
        raise SchemaNotFound(" | ".join(tried), "none of the candidate objects exist")
