"""
Query text construction and input validation.

No caller-supplied string reaches query text without passing through this
module: record ids must match the fixed id shape, identifiers must look like
API names, and search terms are screened for injection patterns before being
escaped.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from project_console.core.engine.errors import ValidationRejected

# 15 or 18 character alphanumeric record ids
RECORD_ID_PATTERN = re.compile(r"^[a-zA-Z0-9]{15}$|^[a-zA-Z0-9]{18}$")

IDENTIFIER_PATTERN = re.compile(
    r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z][A-Za-z0-9_]*)*$"
)

MAX_SEARCH_LENGTH = 255

_SQL_KEYWORDS = r"(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|EXECUTE|UNION)"

# Patterns that indicate an injection attempt rather than a business term
INJECTION_PATTERNS = [
    re.compile(r"('|\\')\s*(OR|AND|UNION)\s*(\d+|'[^']*'|true|false)", re.IGNORECASE),
    re.compile(r"('|\\')\s*;\s*(DROP|DELETE|UPDATE|INSERT|CREATE|ALTER|EXEC|EXECUTE)", re.IGNORECASE),
    re.compile(r"(--|#|/\*).*" + _SQL_KEYWORDS, re.IGNORECASE),
    re.compile(r"('|\")\s*(--|#|/\*)"),
    re.compile(r";\s*" + _SQL_KEYWORDS, re.IGNORECASE),
    re.compile(r"(WAITFOR|DELAY|SLEEP|BENCHMARK)\s*\(", re.IGNORECASE),
    re.compile(r"(\d+\s*=\s*\d+\s*OR|\d+\s*OR\s*\d+\s*=|'\s*OR\s*'|'\s*AND\s*')", re.IGNORECASE),
    re.compile(r"\bOR\s+\d+\s*=\s*\d+", re.IGNORECASE),
    re.compile(_SQL_KEYWORDS + r"\s+.*\s+(FROM|INTO|WHERE|SET|VALUES)\b", re.IGNORECASE),
    re.compile(r"['\";].*\b" + _SQL_KEYWORDS + r"\b", re.IGNORECASE),
    re.compile(r"\b" + _SQL_KEYWORDS + r"\b.*['\";]", re.IGNORECASE),
]


def contains_injection(value: str) -> bool:
    return any(pattern.search(value) for pattern in INJECTION_PATTERNS)


def validate_record_id(value: str) -> str:
    """Return the trimmed id, or raise ValidationRejected if it is not id-shaped."""
    if not isinstance(value, str) or not RECORD_ID_PATTERN.match(value.strip()):
        raise ValidationRejected(f"Invalid record id: {value!r}")
    return value.strip()


def validate_identifier(value: str) -> str:
    """Object and field API names (e.g. Project__c, Project__r.Name)."""
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.match(value):
        raise ValidationRejected(f"Invalid identifier: {value!r}")
    return value


def escape_literal(value: str) -> str:
    """Escape a value for use inside a single-quoted query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def escape_like(value: str) -> str:
    """Escape a value for a LIKE pattern, including its wildcards."""
    return escape_literal(value).replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class SearchTerm:
    """A validated search term. exact=True means the caller wrapped it in double quotes."""

    value: str
    exact: bool = False


def validate_search_term(raw: Optional[str]) -> Optional[SearchTerm]:
    """
    Screen and normalize a user search term.

    Returns None when there is nothing to search for (empty, or just quotes).
    Raises ValidationRejected on injection-looking input or excessive length.

    Example:
        'acme'      -> SearchTerm("acme", exact=False)
        '"Acme EN"' -> SearchTerm("Acme EN", exact=True)
        "' OR 1=1 --" -> ValidationRejected
    """
    if raw is None or not isinstance(raw, str):
        return None

    term = raw.strip()
    if not term or term in ("'", "''", '"', '""'):
        return None

    if len(term) > MAX_SEARCH_LENGTH:
        raise ValidationRejected(
            f"Search term exceeds maximum length of {MAX_SEARCH_LENGTH} characters"
        )

    exact = len(term) >= 2 and term.startswith('"') and term.endswith('"')
    if exact:
        term = term[1:-1].strip()

    if contains_injection(term):
        raise ValidationRejected("Search term contains a disallowed query pattern")

    term = re.sub(r"[<>\x00]", "", term).strip()
    if not term:
        return None
    return SearchTerm(value=term, exact=exact)


def name_filter(field_name: str, term: Optional[SearchTerm]) -> Optional[str]:
    """
    WHERE fragment matching a name field against a search term.

    LIKE is case-insensitive on the remote store.
    """
    if term is None:
        return None
    validate_identifier(field_name)
    if term.exact:
        return f"{field_name} = '{escape_literal(term.value)}'"
    return f"{field_name} LIKE '%{escape_like(term.value)}%'"


def any_name_filter(field_names: Sequence[str], term: Optional[SearchTerm]) -> Optional[str]:
    """OR of name_filter over several fields, e.g. a record name and its parent's."""
    clauses = [name_filter(f, term) for f in field_names]
    clauses = [c for c in clauses if c]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return "(" + " OR ".join(clauses) + ")"


def quote_ids(ids: Iterable[str]) -> str:
    """Validate every id and render them as an IN list body."""
    return ",".join(f"'{validate_record_id(i)}'" for i in ids)


def build_select(
    object_name: str,
    fields: Sequence[str],
    where: Optional[List[str]] = None,
    order_by: Optional[str] = None,
    limit: Optional[int] = None,
    group_by: Optional[str] = None,
) -> str:
    """
    Assemble a SELECT statement from validated parts.

    where clauses are expected to come from the helpers in this module
    (quote_ids, name_filter) or from constant filter expressions.
    """
    validate_identifier(object_name)
    for f in fields:
        # Aggregate expressions like "COUNT(Id) RecordCount" are built internally
        if "(" not in f:
            validate_identifier(f.split(" ")[0])

    soql = f"SELECT {', '.join(fields)} FROM {object_name}"
    clauses = [w for w in (where or []) if w]
    if clauses:
        soql += " WHERE " + " AND ".join(clauses)
    if group_by:
        soql += f" GROUP BY {validate_identifier(group_by)}"
    if order_by:
        soql += f" ORDER BY {order_by}"
    if limit:
        soql += f" LIMIT {int(limit)}"
    return soql
