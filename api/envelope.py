# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

"""Success/error envelopes shared by every JSON endpoint."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sanic import response


@dataclass(frozen=True)
class CountMeta:
    count: int


@dataclass(frozen=True)
class PageMeta:
    limit: int
    offset: int
    count: int


@dataclass
class Ok:
    data: Any
    meta: Any = None
    status: int = 200

    def to_dict(self) -> Dict[str, Any]:
        payload = {"success": True, "data": self.data}
        if self.meta is not None:
            payload.update(asdict(self.meta))
        return payload

    def to_response(self):
        return response.json(self.to_dict(), status=self.status)


@dataclass
class Err:
    message: str
    status: int = 500
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {"success": False, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def to_response(self):
        return response.json(self.to_dict(), status=self.status)


def json_number(value):
    """Render database numerics as plain JSON numbers."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value
