# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

"""Query-string validation helpers shared by the endpoint modules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from api.errors import ParameterError

DEFAULT_LIMIT = 50
DEFAULT_OFFSET = 0

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class Pagination:
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET


def parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    return None


def require_int(args: Mapping[str, Any], name: str) -> int:
    value = args.get(name)
    if value is None or value == "":
        raise ParameterError(f"Missing required parameter: {name}")
    parsed = parse_int(value)
    if parsed is None:
        raise ParameterError(f"Parameter '{name}' must be an integer")
    return parsed


def optional_int(args: Mapping[str, Any], name: str) -> Optional[int]:
    value = args.get(name)
    if value is None or value == "":
        return None
    parsed = parse_int(value)
    if parsed is None:
        raise ParameterError(f"Parameter '{name}' must be an integer")
    return parsed


def require_str(args: Mapping[str, Any], name: str, message: Optional[str] = None) -> str:
    value = args.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ParameterError(message or f"Missing or invalid required parameter: {name}")
    return value


def optional_str(args: Mapping[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def _describe_choices(choices: Sequence[str]) -> str:
    return " or ".join(f"'{choice}'" for choice in choices)


def choice(
    args: Mapping[str, Any],
    name: str,
    choices: Sequence[str],
    normalize: Callable[[str], str] = str.upper,
    required: bool = False,
    message: Optional[str] = None,
) -> Optional[str]:
    """Normalise and check an enumerated value; ``message`` overrides the invalid-value error."""
    value = args.get(name)
    if not isinstance(value, str) or value == "":
        if required:
            raise ParameterError(f"Missing or invalid required parameter: {name}")
        return None
    normalized = normalize(value)
    if normalized not in choices:
        raise ParameterError(message or f"Parameter '{name}' must be {_describe_choices(choices)}")
    return normalized


def pagination(args: Mapping[str, Any]) -> Pagination:
    raw_limit = args.get("limit")
    raw_offset = args.get("offset")
    limit = DEFAULT_LIMIT if raw_limit in (None, "") else parse_int(raw_limit)
    offset = DEFAULT_OFFSET if raw_offset in (None, "") else parse_int(raw_offset)
    if limit is None or offset is None:
        raise ParameterError("Parameters 'limit' and 'offset' must be integers")
    return Pagination(limit=limit, offset=offset)


def require_any(values: Mapping[str, Any], names: Iterable[str]) -> None:
    names = list(names)
    if any(values.get(name) not in (None, "") for name in names):
        return
    listed = ", ".join(names[:-1]) + f", or {names[-1]}" if len(names) > 1 else names[0]
    raise ParameterError(f"Provide at least one filter: {listed}")
