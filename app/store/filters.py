from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Iterable, Mapping, Sequence

FilterExpression = Mapping[str, Any]


@lru_cache(maxsize=2048)
def _compile(pattern: str, options: str) -> re.Pattern[str]:
    flags = re.IGNORECASE if "i" in options else 0
    return re.compile(pattern, flags)


def resolve_path(document: Mapping[str, Any], path: str) -> list[Any]:
    """Collect every value at a dotted path, walking into lists of sub-documents."""
    values: list[Any] = [document]
    for part in path.split("."):
        next_values: list[Any] = []
        for value in values:
            items = value if isinstance(value, list) else [value]
            for item in items:
                if isinstance(item, Mapping) and part in item and item[part] is not None:
                    next_values.append(item[part])
        values = next_values
        if not values:
            return []

    flattened: list[Any] = []
    for value in values:
        if isinstance(value, list):
            flattened.extend(item for item in value if item is not None)
        else:
            flattened.append(value)
    return flattened


def _match_operator(values: list[Any], operator: str, argument: Any, condition: Mapping[str, Any]) -> bool:
    if operator == "$regex":
        pattern = _compile(str(argument), str(condition.get("$options", "")))
        return any(isinstance(value, str) and pattern.search(value) for value in values)
    if operator == "$options":
        return True
    if operator == "$eq":
        return argument in values
    if operator == "$ne":
        return argument not in values
    if operator == "$in":
        return any(value in argument for value in values)
    if operator == "$nin":
        return not any(value in argument for value in values)
    if operator == "$exists":
        return bool(values) == bool(argument)
    raise ValueError(f"Unsupported filter operator '{operator}'")


def _match_field(values: list[Any], condition: Any) -> bool:
    if isinstance(condition, Mapping) and any(str(key).startswith("$") for key in condition):
        return all(
            _match_operator(values, str(operator), argument, condition)
            for operator, argument in condition.items()
        )
    return condition in values


def matches_filter(document: Mapping[str, Any], expression: FilterExpression | None) -> bool:
    if not expression:
        return True
    for key, condition in expression.items():
        if key == "$and":
            if not all(matches_filter(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches_filter(document, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported filter operator '{key}'")
        elif not _match_field(resolve_path(document, key), condition):
            return False
    return True


_OPERATORS = frozenset({"$regex", "$options", "$eq", "$ne", "$in", "$nin", "$exists"})


def validate_filter(expression: FilterExpression | None) -> None:
    """Raise ValueError for operators the evaluator does not support."""
    for key, condition in (expression or {}).items():
        if key in ("$and", "$or"):
            for sub in condition:
                validate_filter(sub)
        elif key.startswith("$"):
            raise ValueError(f"Unsupported filter operator '{key}'")
        elif isinstance(condition, Mapping):
            for operator in condition:
                if str(operator).startswith("$") and operator not in _OPERATORS:
                    raise ValueError(f"Unsupported filter operator '{operator}'")


def excluded_primary_emails(expression: FilterExpression | None) -> list[str]:
    """Emails ruled out by `email $nin` clauses reachable through `$and` alone."""
    if not expression:
        return []
    excluded: list[str] = []
    condition = expression.get("email")
    if isinstance(condition, Mapping) and isinstance(condition.get("$nin"), list):
        excluded.extend(str(email) for email in condition["$nin"])
    for sub in expression.get("$and", ()):
        excluded.extend(excluded_primary_emails(sub))
    return excluded


def apply_projection(document: Mapping[str, Any], projection: Sequence[str] | None) -> dict[str, Any]:
    if not projection:
        return dict(document)
    roots = {field.split(".", 1)[0] for field in projection}
    roots.add("email")
    return {key: value for key, value in document.items() if key in roots}


def filter_documents(
    documents: Iterable[Mapping[str, Any]],
    expression: FilterExpression | None,
    projection: Sequence[str] | None,
    limit: int,
) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    if limit <= 0:
        return results
    for document in documents:
        if matches_filter(document, expression):
            results.append(apply_projection(document, projection))
            if len(results) >= limit:
                break
    return results
