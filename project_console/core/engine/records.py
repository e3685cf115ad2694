"""
Project record browsing, cloning and creation.

Records travel to and from callers keyed by display names (see mapper);
only this module and the mapper deal in remote field names.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from project_console.core.engine import catalog, soql
from project_console.core.engine.describer import Describer, ObjectSchema, name_field
from project_console.core.engine.errors import ValidationRejected
from project_console.core.engine.fetcher import BatchedFetcher
from project_console.core.engine.mapper import FieldMapper

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50

# Display keys tried, in order, when a form has no explicit Name value
NAME_FALLBACK_KEYS = (
    "name",
    "Name",
    "projectName",
    "contributorFacingProjectName",
    "contributorProjectName",
)


def resolve_object_key(object_key: str) -> Tuple[str, str]:
    """URL key -> (object name, label); raises ValidationRejected for unknown keys."""
    try:
        return catalog.CLONEABLE_OBJECTS[object_key]
    except KeyError:
        raise ValidationRejected(f"Unsupported object type: {object_key}") from None


def object_types() -> List[Dict[str, str]]:
    return [
        {"key": key, "objectName": object_name, "label": label}
        for key, (object_name, label) in catalog.CLONEABLE_OBJECTS.items()
    ]


async def search_records(store, object_key: str, term: Optional[str]) -> List[Dict[str, Any]]:
    """
    Name search over one cloneable object type (at most 50 matches).

    An empty term lists the first records by name.
    """
    object_name, _ = resolve_object_key(object_key)
    search = soql.validate_search_term(term)

    schema = await Describer(store).describe(object_name)
    name_fld = name_field(schema)
    query = soql.build_select(
        object_name,
        ["Id", name_fld],
        where=[soql.name_filter(name_fld, search)],
        order_by=name_fld,
        limit=SEARCH_LIMIT,
    )
    result = await BatchedFetcher(store).fetch_all(query)
    return [{"id": r.id, "name": r.get(name_fld) or ""} for r in result.values()]


def _form_fields(schema: ObjectSchema) -> List[str]:
    fields = schema.field_names()
    for f in schema.reference_fields():
        if f.relationship_name:
            fields.append(f"{f.relationship_name}.Name")
    return fields


async def load_record_form(store, object_key: str, record_id: str) -> Optional[Dict[str, Any]]:
    """
    Read one record with every field and map it to display keys.

    Returns None if the record does not exist.
    """
    object_name, label = resolve_object_key(object_key)
    record_id = soql.validate_record_id(record_id)

    schema = await Describer(store).describe(object_name)
    result = await BatchedFetcher(store).fetch_by_ids(object_name, [record_id], _form_fields(schema))
    result.raise_for_failures()

    record = result.records.get(record_id)
    if record is None:
        return None
    return {
        "objectType": object_key,
        "objectName": object_name,
        "label": label,
        "record": FieldMapper().to_display_record(record, schema),
    }


def _default_name(form: Mapping[str, Any]) -> Optional[str]:
    for key in NAME_FALLBACK_KEYS:
        if form.get(key):
            return form[key]
    return None


async def clone_record(store, object_key: str, form: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Create a new record from (possibly edited) display-keyed form data.

    Example:
        clone_record(store, "project", {"projectName": "Acme EN", "projectType": "Data"})
        -> {"id": "a01...", "objectName": "Project__c", "values": {...}}
    """
    object_name, _ = resolve_object_key(object_key)
    schema = await Describer(store).describe(object_name)
    values = FieldMapper().to_remote_values(form, schema)

    if schema.has("Name") and "Name" not in values:
        values["Name"] = _default_name(form) or f"Cloned {datetime.now(timezone.utc).isoformat()}"

    record_id = await store.create(object_name, values)
    logger.info(f"Cloned {object_name} as {record_id} with {len(values)} fields")
    return {"id": record_id, "objectName": object_name, "values": values}


async def build_project_values(store, form: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a project form to create values; the project must be named."""
    schema = await Describer(store).describe(catalog.PROJECT)
    values = FieldMapper().to_remote_values(form, schema)
    if "Name" not in values:
        name = _default_name(form)
        if not name:
            raise ValidationRejected("projectName is required")
        values["Name"] = name
    return values


async def create_project(store, form: Mapping[str, Any]) -> str:
    """Create a Project__c from display-keyed values and return its id."""
    values = await build_project_values(store, form)
    record_id = await store.create(catalog.PROJECT, values)
    logger.info(f"Created {catalog.PROJECT} {record_id}")
    return record_id
