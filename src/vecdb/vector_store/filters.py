"""
Metadata Filters

Evaluates post-ranking metadata predicates. A filter is either a callable
taking the metadata dict, or a Mongo-style query document:

    {"section": "experience"}                      equality
    {"tags": "python"}                             array contains value
    {"importance": {"$gte": 0.5}}                  comparison
    {"$or": [{"section": "skills"}, {"pinned": True}]}
    {"profile.country": {"$in": ["DE", "FR"]}}     dotted path into nested dicts
"""

from typing import Any, Callable, Dict, Mapping, Optional

from ..exceptions import InvalidSearchOptionsError

_MISSING = object()


def _lookup(metadata: Mapping[str, Any], path: str) -> Any:
    if path in metadata:
        return metadata[path]
    current: Any = metadata
    for part in path.split('.'):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _equals(value: Any, expected: Any) -> bool:
    if isinstance(value, (list, tuple)) and not isinstance(expected, (list, tuple)):
        return expected in value
    return value == expected


def _compare(value: Any, expected: Any, op: Callable[[Any, Any], bool]) -> bool:
    if value is _MISSING or value is None:
        return False
    try:
        return op(value, expected)
    except TypeError:
        return False


def _contains(value: Any, expected: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    if isinstance(value, str):
        return str(expected).lower() in value.lower()
    if isinstance(value, (list, tuple, set)):
        return expected in value
    return False


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '$eq': lambda v, e: v is not _MISSING and _equals(v, e),
    '$ne': lambda v, e: v is _MISSING or not _equals(v, e),
    '$gt': lambda v, e: _compare(v, e, lambda a, b: a > b),
    '$gte': lambda v, e: _compare(v, e, lambda a, b: a >= b),
    '$lt': lambda v, e: _compare(v, e, lambda a, b: a < b),
    '$lte': lambda v, e: _compare(v, e, lambda a, b: a <= b),
    '$in': lambda v, e: v is not _MISSING and any(_equals(v, item) for item in e),
    '$nin': lambda v, e: v is _MISSING or not any(_equals(v, item) for item in e),
    '$exists': lambda v, e: (v is not _MISSING) == bool(e),
    '$contains': _contains,
}


def _unsupported(op_name: str) -> InvalidSearchOptionsError:
    return InvalidSearchOptionsError(f"Unsupported filter operator: {op_name}", {"operator": op_name})


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and condition and all(k.startswith('$') for k in condition):
        for op_name, expected in condition.items():
            if op_name == '$not':
                if _match_condition(value, expected):
                    return False
                continue
            op = _OPERATORS.get(op_name)
            if op is None:
                raise _unsupported(op_name)
            if not op(value, expected):
                return False
        return True
    return value is not _MISSING and _equals(value, condition)


def matches_filter(metadata: Optional[Mapping[str, Any]], query: Mapping[str, Any]) -> bool:
    """
    Evaluate a Mongo-style query document against record metadata.

    Args:
        metadata (Optional[Mapping[str, Any]]): Record metadata
        query (Mapping[str, Any]): Filter document

    Returns:
        bool: True if the metadata satisfies every clause
    """
    metadata = metadata or {}
    for key, condition in query.items():
        if key == '$and':
            if not all(matches_filter(metadata, clause) for clause in condition):
                return False
        elif key == '$or':
            if not any(matches_filter(metadata, clause) for clause in condition):
                return False
        elif key == '$not':
            if matches_filter(metadata, condition):
                return False
        elif key.startswith('$'):
            raise _unsupported(key)
        elif not _match_condition(_lookup(metadata, key), condition):
            return False
    return True


def _validate_condition(condition: Any) -> None:
    if not (isinstance(condition, Mapping) and condition and all(k.startswith('$') for k in condition)):
        return
    for op_name, expected in condition.items():
        if op_name == '$not':
            _validate_condition(expected)
        elif op_name not in _OPERATORS:
            raise _unsupported(op_name)
        elif op_name in ('$in', '$nin') and not isinstance(expected, (list, tuple, set)):
            raise InvalidSearchOptionsError(f"{op_name} expects a list, got {expected!r}",
                                            {"operator": op_name})


def validate_filter(query: Mapping[str, Any]) -> None:
    """
    Check a filter document before it is evaluated.

    Raises:
        InvalidSearchOptionsError: Unknown operator or malformed clause
    """
    for key, condition in query.items():
        if key in ('$and', '$or'):
            if not isinstance(condition, (list, tuple)) or not all(isinstance(c, Mapping) for c in condition):
                raise InvalidSearchOptionsError(f"{key} expects a list of filter documents",
                                                {"operator": key})
            for clause in condition:
                validate_filter(clause)
        elif key == '$not':
            if not isinstance(condition, Mapping):
                raise InvalidSearchOptionsError("$not expects a filter document", {"operator": key})
            validate_filter(condition)
        elif key.startswith('$'):
            raise _unsupported(key)
        else:
            _validate_condition(condition)


def compile_filter(filters: Any) -> Optional[Callable[[Dict[str, Any]], bool]]:
    """Turn a filter document or callable into a metadata predicate."""
    if filters is None:
        return None
    if callable(filters):
        return filters
    if isinstance(filters, Mapping):
        if not filters:
            return None
        validate_filter(filters)
        return lambda metadata: matches_filter(metadata, filters)
    raise InvalidSearchOptionsError("filters must be a dict or a callable", {"filters": repr(filters)})
