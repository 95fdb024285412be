# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

from sanic import Blueprint

from api.envelope import Err, Ok
from db.connection import QueryError

blueprint = Blueprint('healthcheck')


@blueprint.get('/health')
async def healthcheck(request):
    database = getattr(request.app.ctx, "db", None)
    if database is None:
        raise RuntimeError("Database not available on application context")
    try:
        await database.ping()
    except QueryError as ex:
        return Err('Database unavailable', status=503, details=str(ex)).to_response()
    return Ok({'status': 'ok'}).to_response()
