"""
Kubernetes label selectors ({matchLabels, matchExpressions}) as used in a
TeamRoleBinding's targetSelector.labelQuery.

to_selector_string() renders the query in the string form accepted by the
API server's ``labelSelector`` list parameter, so clusters are selected
server-side. It raises SelectorError for queries the API server would reject.
"""

import re

from errors import SelectorError

_NAME_RE = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")
_PREFIX_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

OP_IN = "In"
OP_NOT_IN = "NotIn"
OP_EXISTS = "Exists"
OP_DOES_NOT_EXIST = "DoesNotExist"
_OPERATORS = (OP_IN, OP_NOT_IN, OP_EXISTS, OP_DOES_NOT_EXIST)


def _check_key(key) -> None:
    if not isinstance(key, str) or not key:
        raise SelectorError(f"invalid label key {key!r}")
    prefix, _, name = key.rpartition("/")
    if prefix and (len(prefix) > 253 or not _PREFIX_RE.match(prefix)):
        raise SelectorError(f"invalid label key prefix in {key!r}")
    if len(name) > 63 or not _NAME_RE.match(name):
        raise SelectorError(f"invalid label key {key!r}")


def _check_value(key: str, value) -> None:
    if not isinstance(value, str):
        raise SelectorError(f"invalid value {value!r} for label {key!r}")
    if value and (len(value) > 63 or not _NAME_RE.match(value)):
        raise SelectorError(f"invalid value {value!r} for label {key!r}")


def _requirements(query: dict) -> list[tuple[str, str, list[str]]]:
    """Validate the query and flatten it into (key, operator, values) triples."""
    if not isinstance(query, dict):
        raise SelectorError(f"label query must be an object, got {type(query).__name__}")
    unknown = set(query) - {"matchLabels", "matchExpressions"}
    if unknown:
        raise SelectorError(f"unknown label query fields: {', '.join(sorted(unknown))}")

    reqs = []
    match_labels = query.get("matchLabels") or {}
    if not isinstance(match_labels, dict):
        raise SelectorError("matchLabels must be a map of strings")
    for key in sorted(match_labels):
        _check_key(key)
        _check_value(key, match_labels[key])
        reqs.append((key, OP_IN, [match_labels[key]]))

    expressions = query.get("matchExpressions") or []
    if not isinstance(expressions, list):
        raise SelectorError("matchExpressions must be a list")
    for expr in expressions:
        if not isinstance(expr, dict):
            raise SelectorError(f"invalid match expression {expr!r}")
        key = expr.get("key")
        op = expr.get("operator")
        values = expr.get("values") or []
        _check_key(key)
        if op not in _OPERATORS:
            raise SelectorError(f"{op!r} is not a valid label selector operator")
        if op in (OP_IN, OP_NOT_IN) and not values:
            raise SelectorError(f"values must be non-empty for operator {op} on {key!r}")
        if op in (OP_EXISTS, OP_DOES_NOT_EXIST) and values:
            raise SelectorError(f"values must be empty for operator {op} on {key!r}")
        for value in values:
            _check_value(key, value)
        reqs.append((key, op, sorted(values)))
    return reqs


def is_empty(query) -> bool:
    return not query or (not query.get("matchLabels") and not query.get("matchExpressions"))


def to_selector_string(query: dict) -> str:
    parts = []
    for key, op, values in _requirements(query):
        if op == OP_IN and len(values) == 1:
            parts.append(f"{key}={values[0]}")
        elif op == OP_IN:
            parts.append(f"{key} in ({','.join(values)})")
        elif op == OP_NOT_IN:
            parts.append(f"{key} notin ({','.join(values)})")
        elif op == OP_EXISTS:
            parts.append(key)
        else:
            parts.append(f"!{key}")
    return ",".join(parts)
