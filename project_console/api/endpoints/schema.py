import time
from typing import Annotated

from fastapi import APIRouter, Depends

from project_console.api.responses import elapsed_ms, engine_failure
from project_console.core import models
from project_console.core.engine import soql
from project_console.core.engine.client import RemoteStoreClient, get_remote_store
from project_console.core.engine.describer import Describer, name_field
from project_console.core.engine.errors import EngineError
from project_console.core.engine.mapper import FieldMapper
from project_console.core.engine.resolver import describe_relationships
from project_console.core.security import require_permission

router = APIRouter(prefix="/schema", tags=["Schema"])

store_dep = Annotated[RemoteStoreClient, Depends(get_remote_store)]
viewer_dep = Annotated[models.User, Depends(require_permission("view_project"))]


# Fields of an object with their display names
@router.get("/describe/{object_name}")
async def describe_object(object_name: str, store: store_dep, user: viewer_dep):
    started = time.monotonic()
    try:
        soql.validate_identifier(object_name)
        schema = await Describer(store).describe(object_name)
    except EngineError as e:
        return engine_failure(e, started)

    keys = FieldMapper().display_keys(schema)
    fields = [
        {
            "name": f.name,
            "displayName": keys.fields[f.name],
            "label": f.label,
            "type": f.type.value,
            "nullable": f.nullable,
            "createable": f.createable,
            "updateable": f.updateable,
            "referenceTo": list(f.reference_targets),
        }
        for f in schema.fields
    ]
    return {
        "success": True,
        "data": {
            "objectName": schema.object_name,
            "label": schema.label,
            "nameField": name_field(schema),
            "fields": fields,
        },
        "executionTimeMs": elapsed_ms(started),
    }


# Reference fields, for browsing lookups
@router.get("/relationships/{object_name}")
async def object_relationships(object_name: str, store: store_dep, user: viewer_dep):
    started = time.monotonic()
    try:
        soql.validate_identifier(object_name)
        schema = await Describer(store).describe(object_name)
    except EngineError as e:
        return engine_failure(e, started)

    return {
        "success": True,
        "data": describe_relationships(schema),
        "executionTimeMs": elapsed_ms(started),
    }
