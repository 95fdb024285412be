# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

import logging
from typing import Optional

from sanic.exceptions import BadRequest, MethodNotAllowed, NotFound, ServerError

from api.envelope import Err

logger = logging.getLogger(__name__)


class ParameterError(BadRequest):
    """Rejected query parameter; the message names the offending parameter."""


class DatabaseError(ServerError):
    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details


def register_error_handlers(app) -> None:

    @app.exception(ParameterError)
    async def _parameter_error(_request, exc):
        return Err(str(exc), status=400).to_response()

    @app.exception(DatabaseError)
    async def _database_error(_request, exc):
        return Err(str(exc), status=500, details=exc.details).to_response()

    @app.exception(NotFound, MethodNotAllowed)
    async def _not_found(_request, _exc):
        return Err("Not found", status=404).to_response()

    @app.exception(Exception)
    async def _unexpected(request, exc):
        logger.exception("Unhandled error on %s: %s", request.path, exc)
        return Err("Unexpected server error", status=500).to_response()
