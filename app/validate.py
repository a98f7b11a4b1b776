# app/validate.py
from typing import List, Tuple
import logging
import re
import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from .errors import InvalidInput

logger = logging.getLogger(__name__)

BLOCKED_KEYWORDS = (
    "DROP", "DELETE", "INSERT", "UPDATE", "ALTER", "CREATE",
    "TRUNCATE", "EXEC", "EXECUTE", "MERGE", "REPLACE",
)
_BLOCKED_RE = re.compile(r"\b(?:" + "|".join(BLOCKED_KEYWORDS) + r")\b", re.IGNORECASE)
_ALLOWED_START_RE = re.compile(r"(?:SELECT|WITH)\b", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

EMPTY_MSG = "SQL query cannot be empty. It may be that the AI failed to generate a query."
DANGEROUS_MSG = (
    "Query contains potentially dangerous operations (e.g., DROP, DELETE). "
    "Only SELECT statements are allowed."
)
PREFIX_MSG = "Only SELECT and WITH statements are allowed."
MULTI_MSG = "Multiple statements are not allowed."
INTO_MSG = "SELECT INTO is not allowed. Only read-only queries are permitted."


def _parse(sql: str) -> List[exp.Expression] | None:
    # sqlglot yields None for the empty tail after a trailing ';'
    try:
        return [stmt for stmt in sqlglot.parse(sql, read="postgres") if stmt is not None]
    except SqlglotError as e:
        # Leave real syntax errors to PostgreSQL
        logger.debug("sqlglot could not parse statement: %s", e)
        return None


def validate_sql(sql: str | None) -> Tuple[bool, str]:
    """
    Read-only policy for generated or user-supplied SQL.
    Returns (ok, reason). Checks run in order and the first failure wins.
    """
    if not sql or not sql.strip():
        return False, EMPTY_MSG

    blocked = _BLOCKED_RE.search(sql)
    if blocked:
        logger.warning("Rejected SQL with blocked keyword %s", blocked.group(0).upper())
        return False, DANGEROUS_MSG

    if not _ALLOWED_START_RE.match(sql.strip()):
        return False, PREFIX_MSG

    statements = _parse(sql)
    if statements is None:
        return True, "ok"

    if len(statements) > 1:
        return False, MULTI_MSG

    # SELECT ... INTO creates a table
    if any(stmt.find(exp.Into) is not None for stmt in statements):
        logger.warning("Rejected SELECT INTO statement")
        return False, INTO_MSG

    return True, "ok"


def ensure_safe_sql(sql: str | None) -> str:
    ok, reason = validate_sql(sql)
    if not ok:
        raise InvalidInput(reason)
    return sql


def is_valid_identifier(name: str | None) -> bool:
    return bool(name) and _IDENTIFIER_RE.fullmatch(name) is not None


def ensure_identifier(name: str | None) -> str:
    """Table names are interpolated into catalog lookups only after this check."""
    if not is_valid_identifier(name):
        raise InvalidInput("Invalid table name format.")
    return name
