import logging
import time
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from project_console.api.responses import elapsed_ms, engine_failure
from project_console.core import models, schemas
from project_console.core.database import get_db
from project_console.core.engine import records
from project_console.core.engine.client import RemoteStoreClient, get_remote_store
from project_console.core.engine.errors import EngineError
from project_console.core.security import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
store_dep = Annotated[RemoteStoreClient, Depends(get_remote_store)]
viewer_dep = Annotated[models.User, Depends(require_permission("view_project"))]
creator_dep = Annotated[models.User, Depends(require_permission("create_project"))]


@router.get("/object-types")
async def list_object_types(user: viewer_dep):
    return {"success": True, "data": records.object_types()}


@router.post("/search")
async def search_objects(request: schemas.SearchRequest, store: store_dep, user: viewer_dep):
    started = time.monotonic()
    try:
        data = await records.search_records(store, request.object_type, request.search_term)
    except EngineError as e:
        return engine_failure(e, started)
    return {
        "success": True,
        "data": data,
        "total": len(data),
        "executionTimeMs": elapsed_ms(started),
    }


@router.get("/object/{object_key}/{record_id}")
async def get_object_form(object_key: str, record_id: str, store: store_dep, user: viewer_dep):
    started = time.monotonic()
    try:
        form = await records.load_record_form(store, object_key, record_id)
    except EngineError as e:
        return engine_failure(e, started)

    if form is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{object_key} {record_id} not found",
        )
    return {"success": True, "data": form, "executionTimeMs": elapsed_ms(started)}


@router.post("/clone", status_code=status.HTTP_201_CREATED)
async def clone_object(request: schemas.CloneRequest, store: store_dep, user: creator_dep):
    started = time.monotonic()
    try:
        data = await records.clone_record(store, request.object_type, request.values)
    except EngineError as e:
        return engine_failure(e, started)
    logger.info(f"User {user.id} cloned {data['objectName']} -> {data['id']}")
    return {"success": True, "data": data, "executionTimeMs": elapsed_ms(started)}


async def _push_to_remote(record: models.ProjectRecord, store) -> None:
    """Try the remote create for one local record and store the outcome on it."""
    try:
        record.remote_id = await records.create_project(store, record.payload)
        record.sync_status = schemas.SyncStatus.SYNCED.value
        record.last_error = None
    except EngineError as e:
        logger.warning(f"Remote create failed for project record {record.id}: {e}")
        record.sync_status = schemas.SyncStatus.FAILED.value
        record.last_error = str(e)


@router.post(
    "",
    response_model=schemas.ProjectRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_project(
    request: schemas.ProjectCreate, store: store_dep, user: creator_dep, db: db_dep
):
    started = time.monotonic()
    # Reject unusable forms before anything is stored
    try:
        values = await records.build_project_values(store, request.values)
    except EngineError as e:
        return engine_failure(e, started)

    record = models.ProjectRecord(
        name=values["Name"],
        payload=request.values,
        sync_status=schemas.SyncStatus.PENDING.value,
        created_by=user.id,
    )
    db.add(record)
    await db.flush()

    await _push_to_remote(record, store)

    try:
        await db.commit()
        await db.refresh(record)
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to save project record: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save project",
        )
    return record


@router.get("/local", response_model=List[schemas.ProjectRecordResponse])
async def list_local_projects(user: viewer_dep, db: db_dep):
    query = select(models.ProjectRecord).order_by(models.ProjectRecord.created_at.desc(), models.ProjectRecord.id.desc())
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/sync-pending", response_model=schemas.SyncSummary)
async def sync_pending_projects(store: store_dep, user: creator_dep, db: db_dep):
    query = select(models.ProjectRecord).where(
        models.ProjectRecord.sync_status.in_(
            [schemas.SyncStatus.PENDING.value, schemas.SyncStatus.FAILED.value]
        )
    )
    result = await db.execute(query)
    pending = result.scalars().all()

    for record in pending:
        await _push_to_remote(record, store)

    try:
        await db.commit()
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to save sync results: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save sync results",
        )

    for record in pending:
        await db.refresh(record)

    synced = sum(1 for r in pending if r.sync_status == schemas.SyncStatus.SYNCED.value)
    logger.info(f"Sync pending: {synced}/{len(pending)} project records synced")
    return {
        "attempted": len(pending),
        "synced": synced,
        "failed": len(pending) - synced,
        "records": pending,
    }
