# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

from sanic.blueprints import Blueprint
from db.connection import db
from api.errors import register_error_handlers
from api.endpoint.healthcheck import blueprint as healthcheck
from api.endpoint.utilization import blueprint as utilization
from api.endpoint.formulary import blueprint as formulary


def init_api(api):
    db.init_app(api)
    register_error_handlers(api)
    api_blueprint = Blueprint.group([healthcheck, utilization, formulary])
    api.blueprint(api_blueprint)
