"""
FIELD MAPPER - Remote API names <-> caller-facing display names

Example:
    Project_Short_Description__c -> projectShortDescription
    Project_ID_for_Reports__c    -> projectIdForReports
    Name (on Project__c)         -> projectName   (override)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from project_console.core.engine.catalog import CONTRIBUTOR_PROJECT, PROJECT
from project_console.core.engine.describer import ObjectSchema
from project_console.core.engine.errors import UnknownField
from project_console.core.engine.fetcher import RemoteRecord

logger = logging.getLogger(__name__)

CUSTOM_SUFFIX = "__c"

SYSTEM_FIELDS = frozenset(
    {
        "Id",
        "CreatedDate",
        "CreatedById",
        "LastModifiedDate",
        "LastModifiedById",
        "SystemModstamp",
    }
)

# object -> {remote name: display name}, for names the generic rule gets wrong
DEFAULT_OVERRIDES: Dict[str, Dict[str, str]] = {
    PROJECT: {
        "Name": "projectName",
        "Require_PM_Approval_for_Productivity__c": "requirePMApprovalForProductivity",
        "Lever_Requisition_ID__c": "leverRequisitionID",
    },
    CONTRIBUTOR_PROJECT: {
        "Name": "contributorProjectName",
    },
}


def generic_display_name(remote_name: str) -> str:
    """
    Apply the generic naming rule.

    Custom fields lose the __c suffix and their underscore segments become
    lower camel case. Standard fields only get their first letter lowered.
    Already-display names come back unchanged.
    """
    if remote_name.endswith(CUSTOM_SUFFIX):
        parts = [p for p in remote_name[: -len(CUSTOM_SUFFIX)].split("_") if p]
        if not parts:
            return remote_name
        head = parts[0][0].lower() + parts[0][1:]
        return head + "".join(p[0].upper() + p[1:].lower() for p in parts[1:])

    if "_" in remote_name:
        parts = [p for p in remote_name.split("_") if p]
        head = parts[0][0].lower() + parts[0][1:]
        return head + "".join(p[0].upper() + p[1:] for p in parts[1:])
    return remote_name[:1].lower() + remote_name[1:]


@dataclass
class DisplayKeys:
    """Collision-free display keys for one object schema."""

    object_name: str
    fields: Dict[str, str] = field(default_factory=dict)
    # reference field -> key carrying the related record's name
    related_names: Dict[str, str] = field(default_factory=dict)
    reverse: Dict[str, str] = field(default_factory=dict)

    def claim(self, remote_name: str, wanted: str) -> str:
        key = wanted
        if key in self.reverse:
            logger.warning(
                f"{self.object_name}: '{remote_name}' would reuse display key '{wanted}' "
                f"held by {self.reverse[wanted]}, exposing it as '{remote_name}'"
            )
            key = remote_name
        self.reverse[key] = remote_name
        return key


class FieldMapper:
    """Translate field names and records between remote and display form."""

    def __init__(self, overrides: Optional[Mapping[str, Mapping[str, str]]] = None):
        self.overrides = {obj: dict(table) for obj, table in (overrides or DEFAULT_OVERRIDES).items()}
        for obj, table in self.overrides.items():
            seen: Dict[str, str] = {}
            for remote, display in table.items():
                if display in seen:
                    raise ValueError(
                        f"Override for {obj} maps both {seen[display]} and {remote} to '{display}'"
                    )
                seen[display] = remote
        self._keys: Dict[Tuple[str, Tuple[str, ...]], DisplayKeys] = {}

    def to_display_name(self, remote_name: str, object_name: Optional[str] = None) -> str:
        """Display name for a single field, without looking at its siblings."""
        override = self.overrides.get(object_name or "", {}).get(remote_name)
        if override:
            return override
        return generic_display_name(remote_name)

    def display_keys(self, schema: ObjectSchema) -> DisplayKeys:
        """
        Build the display keys for every field of a schema.

        Keys are handed out in a fixed order: overrides first, then
        reference fields together with their <key>Name companions, then
        everything else in schema order. A field whose key is already
        taken keeps its remote name, and a related-name key that is
        taken falls back to <relationship>.Name.
        """
        cache_key = (schema.object_name, tuple(schema.field_names()))
        cached = self._keys.get(cache_key)
        if cached is not None:
            return cached

        keys = DisplayKeys(schema.object_name)
        overrides = self.overrides.get(schema.object_name, {})

        for f in schema.fields:
            if f.name in overrides:
                keys.fields[f.name] = keys.claim(f.name, overrides[f.name])

        for f in schema.reference_fields():
            if f.name not in keys.fields:
                keys.fields[f.name] = keys.claim(f.name, generic_display_name(f.name))
            if f.relationship_name:
                path = f"{f.relationship_name}.Name"
                keys.related_names[f.name] = keys.claim(path, f"{keys.fields[f.name]}Name")

        for f in schema.fields:
            if f.name not in keys.fields:
                keys.fields[f.name] = keys.claim(f.name, generic_display_name(f.name))

        self._keys[cache_key] = keys
        return keys

    def to_remote_name(self, display_name: str, schema: ObjectSchema) -> str:
        """
        Find the remote field for a display name.

        Raises UnknownField if no field on the schema maps to it.
        """
        remote = self.display_keys(schema).reverse.get(display_name)
        if remote and schema.has(remote):
            return remote
        if schema.has(display_name):
            return display_name
        raise UnknownField(display_name, schema.object_name)

    def to_display_record(self, record: RemoteRecord, schema: ObjectSchema) -> Dict[str, Any]:
        """
        Map a record to display keys.

        Reference fields whose related record came back with the row expose
        both <field> (the id) and <field>Name (the related record's name).
        """
        keys = self.display_keys(schema)
        data: Dict[str, Any] = {}
        for remote_name, value in record.fields.items():
            # Relationship payloads surface through their reference field
            if isinstance(value, (RemoteRecord, list)) or remote_name.endswith("__r"):
                continue
            display = keys.fields.get(remote_name)
            if display is None:
                display = self.to_display_name(remote_name, schema.object_name)
                if display in keys.reverse:
                    display = remote_name
            data[display] = value

            meta = schema.get(remote_name)
            name_key = keys.related_names.get(remote_name)
            if meta is None or name_key is None:
                continue
            related = record.fields.get(meta.relationship_name)
            if isinstance(related, RemoteRecord):
                related_name = _related_display_value(related)
                if related_name is not None:
                    data[name_key] = related_name
        return data

    def to_remote_values(
        self,
        form: Mapping[str, Any],
        schema: ObjectSchema,
        createable_only: bool = True,
    ) -> Dict[str, Any]:
        """
        Build a create payload from display-keyed form data.

        System, calculated and (by default) non-createable fields are skipped,
        as are empty values. Exact remote names in the form are accepted too.
        """
        keys = self.display_keys(schema)
        values: Dict[str, Any] = {}
        for f in schema.fields:
            if f.name in SYSTEM_FIELDS or f.calculated:
                continue
            if createable_only and not f.createable:
                continue

            value = form.get(f.name)
            if _is_empty(value):
                value = form.get(keys.fields[f.name])
            if _is_empty(value):
                continue
            values[f.name] = value
        return values


def _related_display_value(related: RemoteRecord) -> Optional[str]:
    for candidate in ("Name", "Title", "Subject", "Label"):
        value = related.fields.get(candidate)
        if value is not None:
            return value
    return None


def _is_empty(value: Any) -> bool:
    return value is None or value == ""
