import asyncio
import logging
import time
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from project_console.api.responses import engine_failure, timeout_failure
from project_console.core import models
from project_console.core.config import settings
from project_console.core.engine import pipeline
from project_console.core.engine.client import RemoteStoreClient, get_remote_store
from project_console.core.engine.deadline import DeadlineBudget
from project_console.core.engine.errors import EngineError
from project_console.core.security import require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])

store_dep = Annotated[RemoteStoreClient, Depends(get_remote_store)]
viewer_dep = Annotated[models.User, Depends(require_permission("view_project"))]


async def run_report(report, deadline_seconds: float, timeout_seconds: float, **kwargs):
    """
    Run a report pipeline under the inbound timeout.

    The pipeline gets its own deadline, which must be shorter than the
    inbound timeout so a slow run comes back as flagged data rather than
    a 504.
    """
    if timeout_seconds <= deadline_seconds:
        raise ValueError(
            f"inbound timeout {timeout_seconds}s must exceed the pipeline deadline {deadline_seconds}s"
        )
    started = time.monotonic()
    try:
        async with asyncio.timeout(timeout_seconds):
            return await report(
                deadline=DeadlineBudget.start(deadline_seconds), **kwargs
            )
    except TimeoutError:
        return timeout_failure(started)
    except EngineError as e:
        return engine_failure(e, started)


@router.get("/active-contributors-by-qual-step")
async def active_contributors_by_qual_step(
    store: store_dep,
    user: viewer_dep,
    search: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    logger.info(f"User {user.id} requested qual step report (search={search!r})")
    return await run_report(
        pipeline.active_contributors_by_qual_step,
        settings.AGGREGATE_TIMEOUT_SECONDS,
        settings.REQUEST_TIMEOUT_SECONDS,
        store=store,
        search=search,
        offset=offset,
        limit=limit,
    )


@router.get("/active-contributors-by-qual-step/{qual_step_id}/contributors")
async def qual_step_contributors(qual_step_id: str, store: store_dep, user: viewer_dep):
    return await run_report(
        pipeline.qual_step_contributors,
        settings.DRILLDOWN_TIMEOUT_SECONDS,
        settings.DRILLDOWN_REQUEST_TIMEOUT_SECONDS,
        store=store,
        qual_step_id=qual_step_id,
    )


@router.get("/active-contributors-by-project")
async def active_contributors_by_project(
    store: store_dep,
    user: viewer_dep,
    search: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    logger.info(f"User {user.id} requested project report (search={search!r})")
    return await run_report(
        pipeline.active_contributors_by_project,
        settings.AGGREGATE_TIMEOUT_SECONDS,
        settings.REQUEST_TIMEOUT_SECONDS,
        store=store,
        search=search,
        offset=offset,
        limit=limit,
    )


@router.get("/po-productivity-targets")
async def po_productivity_targets(
    store: store_dep,
    user: viewer_dep,
    search: Optional[str] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    logger.info(f"User {user.id} requested productivity targets (search={search!r})")
    return await run_report(
        pipeline.po_productivity_targets,
        settings.AGGREGATE_TIMEOUT_SECONDS,
        settings.REQUEST_TIMEOUT_SECONDS,
        store=store,
        search=search,
        offset=offset,
        limit=limit,
    )
