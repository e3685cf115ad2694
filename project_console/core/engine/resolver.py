"""
RELATIONSHIP RESOLVER - Work out how two object types are connected

The connecting field between two objects is not known ahead of time; it
depends on how the remote org was configured. The resolver inspects the
described schemas and picks one of three shapes:

    JUNCTION  a link object with one reference to each side (most reliable)
    DIRECT    the target object references the source
    REVERSE   the source object references the target

Field matching runs in tiers, each an ordered list of predicates over
FieldMeta, evaluated lazily with the first match winning:

    1. reference field with an exact name from the ranked candidate list
    2. reference field whose target type is the wanted object
    3. reference field whose name contains a domain keyword
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from project_console.core.engine.catalog import LinkCandidates
from project_console.core.engine.describer import Describer, FieldMeta, ObjectSchema
from project_console.core.engine.errors import NoRelationshipFound, SchemaNotFound

logger = logging.getLogger(__name__)

Predicate = Callable[[FieldMeta], bool]


class RelationshipKind(str, Enum):
    DIRECT = "direct"
    REVERSE = "reverse"
    JUNCTION = "direct_via_junction"


@dataclass(frozen=True)
class RelationshipCandidate:
    """
    How source records join to target records.

    DIRECT:   target.<target_field> = source.Id   (source_field is "Id")
    REVERSE:  source.<source_field> = target.Id   (target_field is "Id")
    JUNCTION: junction.<source_field> = source.Id and
              junction.<target_field> = target.Id
    """

    kind: RelationshipKind
    source_field: str
    target_field: str
    junction_object: Optional[str] = None


@dataclass(frozen=True)
class FieldMatch:
    field: FieldMeta
    tier: str


# ============================================================================
# MATCHING TIERS
# ============================================================================


def name_is(name: str) -> Predicate:
    return lambda f: f.is_reference and f.name == name


def references(object_name: str) -> Predicate:
    return lambda f: f.is_reference and object_name in f.reference_targets


def reference_named_like(keyword: str) -> Predicate:
    lowered = keyword.lower()
    return lambda f: f.is_reference and lowered in f.name.lower()


def build_tiers(
    names: Sequence[str], target_type: Optional[str], keywords: Sequence[str]
) -> List[Tuple[str, List[Predicate]]]:
    tiers = [("exact_name", [name_is(n) for n in names])]
    if target_type:
        tiers.append(("reference_target", [references(target_type)]))
    tiers.append(("keyword", [reference_named_like(k) for k in keywords]))
    return tiers


def _tier_matches(
    schema: ObjectSchema, predicates: List[Predicate], exclude: Sequence[str]
) -> Iterator[FieldMeta]:
    # Predicate order first, then schema field order
    seen = set()
    for predicate in predicates:
        for f in schema.fields:
            if f.name in exclude or f.name in seen:
                continue
            if predicate(f):
                seen.add(f.name)
                yield f


def find_field(
    schema: ObjectSchema,
    names: Sequence[str] = (),
    target_type: Optional[str] = None,
    keywords: Sequence[str] = (),
    exclude: Sequence[str] = (),
) -> Optional[FieldMatch]:
    """
    Find the field on `schema` that links to `target_type`.

    Returns the first match of the first tier that matches anything, or None.
    When a tier matches more than one field the pick and the runners-up are
    logged.
    """
    for tier_name, predicates in build_tiers(names, target_type, keywords):
        matches = _tier_matches(schema, predicates, exclude)
        chosen = next(matches, None)
        if chosen is None:
            continue

        others = [f.name for f in matches]
        if others:
            logger.info(
                f"{schema.object_name}: tier '{tier_name}' matched several fields, "
                f"using {chosen.name} over {others}"
            )
        else:
            logger.info(f"{schema.object_name}: tier '{tier_name}' matched {chosen.name}")
        return FieldMatch(field=chosen, tier=tier_name)
    return None


# ============================================================================
# RESOLVER
# ============================================================================


class RelationshipResolver:
    """Resolve relationships using one request's Describer."""

    def __init__(self, describer: Describer):
        self.describer = describer

    async def resolve(
        self,
        source_type: str,
        target_type: str,
        candidates: LinkCandidates,
        junction_objects: Optional[Sequence[str]] = None,
    ) -> RelationshipCandidate:
        """
        Pick the relationship shape connecting source_type to target_type.

        Order: junction objects (in the given order), then DIRECT, then
        REVERSE. Raises NoRelationshipFound when nothing qualifies.
        """
        if junction_objects is None:
            junction_objects = candidates.junction_objects
        tried = []

        # 1. Junction first
        for junction in junction_objects:
            tried.append(f"junction:{junction}")
            try:
                schema = await self.describer.describe(junction)
            except SchemaNotFound as e:
                logger.info(f"Junction {junction} not available: {e}")
                continue

            source_link = find_field(
                schema, candidates.source_names, source_type, candidates.source_keywords
            )
            if source_link is None:
                continue
            target_link = find_field(
                schema,
                candidates.target_names,
                target_type,
                candidates.target_keywords,
                exclude=[source_link.field.name],
            )
            if target_link is None:
                continue

            logger.info(
                f"Resolved {source_type} -> {target_type} via junction {junction}: "
                f"{source_link.field.name} -> {target_link.field.name}"
            )
            return RelationshipCandidate(
                kind=RelationshipKind.JUNCTION,
                source_field=source_link.field.name,
                target_field=target_link.field.name,
                junction_object=junction,
            )

        # 2. Direct: the target references the source
        tried.append(f"direct:{target_type}")
        target_schema = await self._describe_optional(target_type)
        if target_schema is not None:
            match = find_field(
                target_schema,
                candidates.source_names,
                source_type,
                candidates.source_keywords,
            )
            if match is not None:
                logger.info(
                    f"Resolved {source_type} -> {target_type} directly via "
                    f"{target_type}.{match.field.name}"
                )
                return RelationshipCandidate(
                    kind=RelationshipKind.DIRECT,
                    source_field="Id",
                    target_field=match.field.name,
                )

        # 3. Reverse: the source references the target
        tried.append(f"reverse:{source_type}")
        source_schema = await self._describe_optional(source_type)
        if source_schema is not None:
            match = find_field(
                source_schema,
                candidates.target_names,
                target_type,
                candidates.target_keywords,
            )
            if match is not None:
                logger.info(
                    f"Resolved {source_type} -> {target_type} in reverse via "
                    f"{source_type}.{match.field.name}"
                )
                return RelationshipCandidate(
                    kind=RelationshipKind.REVERSE,
                    source_field=match.field.name,
                    target_field="Id",
                )

        logger.warning(
            f"No relationship between {source_type} and {target_type}; tried {tried}"
        )
        raise NoRelationshipFound(source_type, target_type, tried)

    async def _describe_optional(self, object_name: str) -> Optional[ObjectSchema]:
        try:
            return await self.describer.describe(object_name)
        except SchemaNotFound as e:
            logger.warning(f"Skipping {object_name} during resolution: {e}")
            return None


def describe_relationships(schema: ObjectSchema) -> List[dict]:
    """List the reference fields of a schema for lookup browsing."""
    return [
        {
            "field": f.name,
            "label": f.label,
            "relationshipName": f.relationship_name,
            "referenceTo": list(f.reference_targets),
        }
        for f in schema.reference_fields()
    ]
