import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from project_console.core.config import settings
from project_console.core.engine import catalog, soql
from project_console.core.engine.assembler import assemble, paginate
from project_console.core.engine.deadline import DeadlineBudget
from project_console.core.engine.describer import Describer, FieldMeta, ObjectSchema, name_field
from project_console.core.engine.errors import DeadlineExceeded, NoRelationshipFound
from project_console.core.engine.fetcher import BatchedFetcher, ChildIndex, RemoteRecord
from project_console.core.engine.mapper import FieldMapper
from project_console.core.engine.resolver import (
    RelationshipKind,
    RelationshipResolver,
    find_field,
)


# -----------------------------------------------------------------------------
# REPORT PIPELINES - Orchestration
# Purpose: run describe -> resolve -> batched fetch -> assemble for each report,
# inside one request's deadline, and shape the uniform response
# Recoverable problems (missing relationship, failed chunk, timeout) become
# flags on the response instead of errors
# -----------------------------------------------------------------------------


class ReportStatus(Enum):
    """Outcome of a report run."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    DEGRADED = "degraded"
    TIMED_OUT = "timed_out"


logger = logging.getLogger(__name__)


class PipelineLogger:
    """Step log for one report run."""

    def __init__(self, report: str):
        """
        Initialize a pipeline logger scoped to one report run.

        Args:
            report: Report name used as the log prefix.

        Example:
            plog = PipelineLogger("qual-step")
        """
        self.report = report
        self.start_time = datetime.now()
        self.logs = []

    def log(self, step: str, message: str, level: str = "info"):
        timestamp = datetime.now().isoformat()
        log_entry = {
            "timestamp": timestamp,
            "step": step,
            "message": message,
            "level": level,
            "elapsed_seconds": (datetime.now() - self.start_time).total_seconds(),
        }
        self.logs.append(log_entry)

        if level == "error":
            logger.error(f"[{self.report}] {step}: {message}")
        elif level == "warning":
            logger.warning(f"[{self.report}] {step}: {message}")
        else:
            logger.info(f"[{self.report}] {step}: {message}")

    def get_summary(self) -> Dict[str, Any]:
        """Compact overview of the run."""
        end_time = datetime.now()
        return {
            "report": self.report,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "duration_seconds": (end_time - self.start_time).total_seconds(),
            "total_logs": len(self.logs),
            "warnings": [e["message"] for e in self.logs if e["level"] == "warning"],
        }


@dataclass
class ReportContext:
    """Per-request collaborators and the flags accumulated along the way."""

    store: Any
    deadline: DeadlineBudget
    plog: PipelineLogger
    describer: Describer = field(init=False)
    resolver: RelationshipResolver = field(init=False)
    fetcher: BatchedFetcher = field(init=False)
    partial: bool = False
    timed_out: bool = False
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)

    def __post_init__(self):
        # Fresh describer per request: schemas never outlive the request
        self.describer = Describer(self.store)
        self.resolver = RelationshipResolver(self.describer)
        self.fetcher = BatchedFetcher(self.store, deadline=self.deadline)

    @property
    def status(self) -> ReportStatus:
        if self.timed_out:
            return ReportStatus.TIMED_OUT
        if self.degraded:
            return ReportStatus.DEGRADED
        if self.partial:
            return ReportStatus.PARTIAL
        return ReportStatus.COMPLETED

    def warn(self, step: str, message: str):
        self.warnings.append(message)
        self.plog.log(step, message, "warning")

    def absorb(self, step: str, outcome):
        """Pick up partial/timed_out flags from a FetchResult or ChildIndex."""
        if outcome.partial and not self.partial:
            self.partial = True
            self.warn(step, "Some batches failed; results are incomplete")
        if outcome.timed_out and not self.timed_out:
            self.timed_out = True
            self.warn(step, "Request timeout: processing took too long, results are incomplete")

    def mark_timed_out(self, error: DeadlineExceeded):
        self.timed_out = True
        self.warn(error.step or "deadline", str(error))

    def mark_degraded(self, step: str, error: NoRelationshipFound):
        self.degraded = True
        self.warn(step, str(error))


# ============================================================================
# RESPONSE SHAPE
# ============================================================================


def success_response(
    ctx: ReportContext,
    data: List[Dict[str, Any]],
    page: Optional[Dict[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Uniform success envelope.

    Without a page window the whole list is one page. extra adds
    report-specific keys next to the standard ones.
    """
    if page is None:
        page = paginate(data, 0, len(data))
    ctx.plog.log(
        "done",
        f"{len(page['items'])} rows, status={ctx.status.value}, "
        f"{ctx.deadline.remaining():.1f}s of budget left",
    )
    logger.info(f"Report summary: {ctx.plog.get_summary()}")
    response = {
        "success": True,
        "data": page["items"],
        "hasMore": page["hasMore"],
        "total": page["total"],
        "offset": page["offset"],
        "limit": page["limit"],
        "executionTimeMs": ctx.deadline.elapsed_ms(),
        "lastRefreshed": datetime.now(timezone.utc).isoformat(),
        "partial": ctx.partial,
        "timedOut": ctx.timed_out,
        "degraded": ctx.degraded,
        "warnings": list(ctx.warnings),
    }
    response.update(extra or {})
    return response


def error_response(error: str, execution_time_ms: int) -> Dict[str, Any]:
    return {"success": False, "error": error, "executionTimeMs": execution_time_ms}


# ============================================================================
# SHARED STEPS
# ============================================================================


async def _fetch_parents(
    ctx: ReportContext, schema: ObjectSchema, term: Optional[soql.SearchTerm]
) -> Tuple[List[RemoteRecord], str]:
    name_fld = name_field(schema)
    query = soql.build_select(
        schema.object_name,
        ["Id", name_fld],
        where=[soql.name_filter(name_fld, term)],
        order_by=name_fld,
    )
    result = await ctx.fetcher.fetch_all(query)
    ctx.absorb("parents", result)
    ctx.plog.log("parents", f"{len(result.records)} {schema.object_name} records")
    return result.values(), name_fld


async def _count_active_contributors(ctx: ReportContext, objective_ids: List[str]) -> Dict[str, int]:
    """Active Contributor_Project__c count per project objective id."""
    if not objective_ids:
        return {}

    ctx.deadline.check("resolve contributor link")
    candidate = await ctx.resolver.resolve(
        catalog.PROJECT_OBJECTIVE,
        catalog.CONTRIBUTOR_PROJECT,
        catalog.OBJECTIVE_TO_CONTRIBUTOR_PROJECT,
    )

    ctx.deadline.check("count contributors")
    if candidate.kind == RelationshipKind.DIRECT:
        link = candidate.target_field
        result = await ctx.fetcher.fetch_by_ids(
            catalog.CONTRIBUTOR_PROJECT,
            objective_ids,
            [f"{link} ParentId", "COUNT(Id) RecordCount"],
            filter_expr=catalog.ACTIVE_CONTRIBUTOR_FILTER,
            batch_size=settings.COUNT_BATCH_SIZE,
            id_field=link,
            group_by=link,
            key_field="ParentId",
        )
        ctx.absorb("count contributors", result)
        return {r.id: int(r.get("RecordCount") or 0) for r in result.values()}

    # No direct link to group on: fetch the rows and count them here
    index = await ctx.fetcher.fetch_related(
        candidate,
        catalog.PROJECT_OBJECTIVE,
        objective_ids,
        catalog.CONTRIBUTOR_PROJECT,
        ["Id"],
        filter_expr=catalog.ACTIVE_CONTRIBUTOR_FILTER,
        batch_size=settings.COUNT_BATCH_SIZE,
    )
    ctx.absorb("count contributors", index)
    return {po_id: len(children) for po_id, children in index.children.items()}


async def _objective_project_field(ctx: ReportContext) -> Optional[str]:
    schema = await ctx.describer.describe(catalog.PROJECT_OBJECTIVE)
    match = find_field(
        schema,
        catalog.PROJECT_FIELD_NAMES,
        catalog.PROJECT,
        catalog.PROJECT_KEYWORDS,
    )
    return match.field.name if match else None


def _objective_rows(
    objectives: List[RemoteRecord], counts: Dict[str, int], project_field: Optional[str]
) -> List[Dict[str, Any]]:
    """Objectives with at least one active contributor, busiest first."""
    return assemble(
        objectives,
        ChildIndex(),
        count_fn=lambda po, _: counts.get(po.id, 0),
        name_fn=lambda po: po.get("Name") or "",
        build_fn=lambda po, _, count: {
            "id": po.id,
            "name": po.get("Name") or "",
            "projectId": po.get(project_field) if project_field else None,
            "activeContributorCount": count,
        },
    )


# ============================================================================
# REPORTS
# ============================================================================


async def active_contributors_by_qual_step(
    store,
    search: Optional[str] = None,
    offset: int = 0,
    limit: int = 100,
    deadline: Optional[DeadlineBudget] = None,
) -> Dict[str, Any]:
    """
    Qualification steps ranked by active contributors across their objectives.

    Steps whose objectives have no active contributors are left out.

    Args:
        store: remote store client
        search: optional name filter on the qualification step
        offset, limit: page window over the finished list
        deadline: request budget (defaults to AGGREGATE_TIMEOUT_SECONDS)

    Returns:
        Uniform response; each item has qualStepId, qualStepName,
        projectCount, projectObjectiveCount, activeContributorCount and
        projectObjectives
    """
    term = soql.validate_search_term(search)
    ctx = ReportContext(
        store=store,
        deadline=deadline or DeadlineBudget.start(settings.AGGREGATE_TIMEOUT_SECONDS),
        plog=PipelineLogger("active-contributors-by-qual-step"),
    )
    rows: List[Dict[str, Any]] = []

    # Missing step object fails the whole request
    schema = await ctx.describer.first_available(catalog.QUAL_STEP_OBJECTS)
    ctx.plog.log("describe", f"Using {schema.object_name}")

    try:
        ctx.deadline.check("parents")
        steps, name_fld = await _fetch_parents(ctx, schema, term)
        if not steps:
            return success_response(ctx, [], paginate([], offset, limit))

        ctx.deadline.check("resolve objectives")
        candidate = await ctx.resolver.resolve(
            schema.object_name, catalog.PROJECT_OBJECTIVE, catalog.QUAL_STEP_TO_OBJECTIVE
        )
        ctx.plog.log("resolve", f"{candidate.kind.value} via {candidate}")

        project_field = await _objective_project_field(ctx)
        child_fields = ["Name"] + ([project_field] if project_field else [])

        ctx.deadline.check("objectives")
        objectives = await ctx.fetcher.fetch_related(
            candidate,
            schema.object_name,
            [s.id for s in steps],
            catalog.PROJECT_OBJECTIVE,
            child_fields,
        )
        ctx.absorb("objectives", objectives)

        counts = await _count_active_contributors(ctx, objectives.child_ids())

        def build(step, children, total):
            po_rows = _objective_rows(children, counts, project_field)
            projects = {po["projectId"] for po in po_rows if po["projectId"]}
            return {
                "qualStepId": step.id,
                "qualStepName": step.get(name_fld) or "",
                "projectCount": len(projects),
                "projectObjectiveCount": len(po_rows),
                "activeContributorCount": total,
                "projectObjectives": po_rows,
            }

        rows = assemble(
            steps,
            objectives,
            count_fn=lambda step, children: sum(counts.get(po.id, 0) for po in children),
            name_fn=lambda step: step.get(name_fld) or "",
            build_fn=build,
        )
    except NoRelationshipFound as e:
        ctx.mark_degraded("resolve", e)
    except DeadlineExceeded as e:
        ctx.mark_timed_out(e)

    return success_response(ctx, rows, paginate(rows, offset, limit))


async def qual_step_contributors(
    store,
    qual_step_id: str,
    deadline: Optional[DeadlineBudget] = None,
) -> Dict[str, Any]:
    """
    Drill-down: active contributors across one qualification step's objectives.

    Rows are sorted by objective name, then contributor name.
    """
    qual_step_id = soql.validate_record_id(qual_step_id)
    ctx = ReportContext(
        store=store,
        deadline=deadline or DeadlineBudget.start(settings.DRILLDOWN_TIMEOUT_SECONDS),
        plog=PipelineLogger("qual-step-contributors"),
    )
    rows: List[Dict[str, Any]] = []

    schema = await ctx.describer.first_available(catalog.QUAL_STEP_OBJECTS)
    name_fld = name_field(schema)

    try:
        ctx.deadline.check("qualification step")
        step_result = await ctx.fetcher.fetch_by_ids(schema.object_name, [qual_step_id], ["Id", name_fld])
        ctx.absorb("qualification step", step_result)
        step = step_result.records.get(qual_step_id)
        if step is None:
            ctx.warn("qualification step", f"Qualification step {qual_step_id} not found")
            return success_response(ctx, [])
        step_name = step.get(name_fld) or ""

        ctx.deadline.check("resolve objectives")
        candidate = await ctx.resolver.resolve(
            schema.object_name, catalog.PROJECT_OBJECTIVE, catalog.QUAL_STEP_TO_OBJECTIVE
        )
        objectives = await ctx.fetcher.fetch_related(
            candidate, schema.object_name, [qual_step_id], catalog.PROJECT_OBJECTIVE, ["Name"]
        )
        ctx.absorb("objectives", objectives)
        po_by_id = {po.id: po for po in objectives.get(qual_step_id)}

        ctx.deadline.check("resolve contributor link")
        cp_candidate = await ctx.resolver.resolve(
            catalog.PROJECT_OBJECTIVE,
            catalog.CONTRIBUTOR_PROJECT,
            catalog.OBJECTIVE_TO_CONTRIBUTOR_PROJECT,
        )
        cp_schema = await ctx.describer.describe(catalog.CONTRIBUTOR_PROJECT)
        link = catalog.CONTRIBUTOR_PROJECT_TO_CONTACT
        contributor_match = find_field(
            cp_schema, link.target_names, catalog.CONTACT, link.target_keywords
        )
        if contributor_match is None:
            raise NoRelationshipFound(catalog.CONTRIBUTOR_PROJECT, catalog.CONTACT)
        contributor_field = contributor_match.field.name

        ctx.deadline.check("contributor projects")
        assignments = await ctx.fetcher.fetch_related(
            cp_candidate,
            catalog.PROJECT_OBJECTIVE,
            list(po_by_id),
            catalog.CONTRIBUTOR_PROJECT,
            [contributor_field],
            filter_expr=catalog.ACTIVE_CONTRIBUTOR_FILTER,
            batch_size=settings.COUNT_BATCH_SIZE,
        )
        ctx.absorb("contributor projects", assignments)

        contact_ids = [
            cp.get(contributor_field)
            for po_id in po_by_id
            for cp in assignments.get(po_id)
            if cp.get(contributor_field)
        ]
        ctx.deadline.check("contacts")
        contacts = await ctx.fetcher.fetch_by_ids(
            catalog.CONTACT,
            contact_ids,
            ["Id", "Name", "Email"],
            batch_size=settings.COUNT_BATCH_SIZE,
        )
        ctx.absorb("contacts", contacts)

        for po_id, po in po_by_id.items():
            for cp in assignments.get(po_id):
                contact = contacts.records.get(cp.get(contributor_field))
                if contact is None:
                    continue
                rows.append(
                    {
                        "qualStepName": step_name,
                        "projectObjectiveId": po_id,
                        "projectObjectiveName": po.get("Name") or "",
                        "contributorId": contact.id,
                        "contributorName": contact.get("Name") or "",
                        "contributorEmail": contact.get("Email") or "",
                    }
                )
        rows.sort(key=lambda r: (r["projectObjectiveName"].lower(), r["contributorName"].lower()))
    except NoRelationshipFound as e:
        ctx.mark_degraded("resolve", e)
    except DeadlineExceeded as e:
        ctx.mark_timed_out(e)

    return success_response(ctx, rows)


async def active_contributors_by_project(
    store,
    search: Optional[str] = None,
    offset: int = 0,
    limit: int = 100,
    deadline: Optional[DeadlineBudget] = None,
) -> Dict[str, Any]:
    """
    Projects ranked by active contributors across their objectives.

    Same filtering and ordering rules as the qualification step report.
    """
    term = soql.validate_search_term(search)
    ctx = ReportContext(
        store=store,
        deadline=deadline or DeadlineBudget.start(settings.AGGREGATE_TIMEOUT_SECONDS),
        plog=PipelineLogger("active-contributors-by-project"),
    )
    rows: List[Dict[str, Any]] = []

    schema = await ctx.describer.describe(catalog.PROJECT)

    try:
        ctx.deadline.check("parents")
        projects, name_fld = await _fetch_parents(ctx, schema, term)
        if not projects:
            return success_response(ctx, [], paginate([], offset, limit))

        ctx.deadline.check("resolve objectives")
        candidate = await ctx.resolver.resolve(
            catalog.PROJECT, catalog.PROJECT_OBJECTIVE, catalog.PROJECT_TO_OBJECTIVE
        )

        ctx.deadline.check("objectives")
        objectives = await ctx.fetcher.fetch_related(
            candidate,
            catalog.PROJECT,
            [p.id for p in projects],
            catalog.PROJECT_OBJECTIVE,
            ["Name"],
        )
        ctx.absorb("objectives", objectives)

        counts = await _count_active_contributors(ctx, objectives.child_ids())

        def build(project, children, total):
            po_rows = _objective_rows(children, counts, None)
            for po in po_rows:
                po["projectId"] = project.id
            return {
                "projectId": project.id,
                "projectName": project.get(name_fld) or "",
                "projectObjectiveCount": len(po_rows),
                "activeContributorCount": total,
                "projectObjectives": po_rows,
            }

        rows = assemble(
            projects,
            objectives,
            count_fn=lambda project, children: sum(counts.get(po.id, 0) for po in children),
            name_fn=lambda project: project.get(name_fld) or "",
            build_fn=build,
        )
    except NoRelationshipFound as e:
        ctx.mark_degraded("resolve", e)
    except DeadlineExceeded as e:
        ctx.mark_timed_out(e)

    return success_response(ctx, rows, paginate(rows, offset, limit))


def _productivity_fields(schema: ObjectSchema) -> List[FieldMeta]:
    """Fields whose name or label mentions a productivity keyword."""
    return [
        f
        for f in schema.fields
        if any(k in f.name.lower() or k in f.label.lower() for k in catalog.PRODUCTIVITY_KEYWORDS)
    ]


async def po_productivity_targets(
    store,
    search: Optional[str] = None,
    offset: int = 0,
    limit: int = 100,
    deadline: Optional[DeadlineBudget] = None,
) -> Dict[str, Any]:
    """
    Open project objectives with their productivity target columns.

    Selects the default target columns the org has plus every productivity
    related field, keeps Draft/Open/Paused objectives when a Status__c field
    exists, and matches search against the objective name or its project's
    name. Rows carry display keys; availableFields lists the productivity
    columns so callers can pick what to show.
    """
    term = soql.validate_search_term(search)
    ctx = ReportContext(
        store=store,
        deadline=deadline or DeadlineBudget.start(settings.AGGREGATE_TIMEOUT_SECONDS),
        plog=PipelineLogger("po-productivity-targets"),
    )
    rows: List[Dict[str, Any]] = []

    schema = await ctx.describer.describe(catalog.PROJECT_OBJECTIVE)
    name_fld = name_field(schema)
    productivity = _productivity_fields(schema)

    fields = ["Id", name_fld]
    fields += [f for f in catalog.PRODUCTIVITY_DEFAULT_FIELDS if schema.has(f)]
    fields += [f.name for f in productivity]
    search_fields = [name_fld]

    project = find_field(schema, catalog.PROJECT_FIELD_NAMES, catalog.PROJECT, catalog.PROJECT_KEYWORDS)
    if project and project.field.relationship_name:
        project_name = f"{project.field.relationship_name}.Name"
        fields += [project.field.name, project_name]
        search_fields.append(project_name)
    else:
        ctx.warn("project link", f"{schema.object_name} has no project reference; project names omitted")

    query = soql.build_select(
        schema.object_name,
        list(dict.fromkeys(fields)),
        where=[
            catalog.OPEN_OBJECTIVE_FILTER if schema.has("Status__c") else None,
            soql.any_name_filter(search_fields, term),
        ],
        order_by=name_fld,
    )

    try:
        ctx.deadline.check("objectives")
        result = await ctx.fetcher.fetch_all(query)
        ctx.absorb("objectives", result)
        ctx.plog.log("objectives", f"{len(result.records)} objectives with targets")

        mapper = FieldMapper()
        rows = [mapper.to_display_record(po, schema) for po in result.values()]
    except DeadlineExceeded as e:
        ctx.mark_timed_out(e)

    keys = FieldMapper().display_keys(schema)
    available = [
        {"name": f.name, "displayName": keys.fields[f.name], "label": f.label, "type": f.type.value}
        for f in productivity
    ]
    return success_response(
        ctx, rows, paginate(rows, offset, limit), extra={"availableFields": available}
    )
