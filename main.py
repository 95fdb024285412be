#!/usr/bin/env python
# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

import asyncio
import logging.config
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

env_path = Path(__file__).absolute().parent / '.env'
load_dotenv(dotenv_path=env_path)

LOG_CFG = os.getenv('DRUGSTATS_LOG_CFG', str(Path(__file__).absolute().parent / 'logging.yaml'))


def configure_logging(path=LOG_CFG):
    with open(path, encoding="utf-8") as log_config_file:
        logging.config.dictConfig(yaml.safe_load(log_config_file))


configure_logging()

import click  # noqa: E402
import uvloop  # noqa: E402
from sanic import Sanic  # noqa: E402

from api import init_api  # noqa: E402

uvloop.install()
asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())

api = Sanic('drugstats-api', env_prefix="DRUGSTATS_")
init_api(api)


@click.command(help="Run sanic server")
@click.option('--host', help='Setup host ip to listen up, default to 0.0.0.0', default='0.0.0.0')
@click.option('--port', help='Setup port to attach, default to 3000', type=int, default=3000,
              envvar='DRUGSTATS_PORT')
@click.option('--workers', help='Setup workers to run, default to 1', type=int, default=1)
@click.option('--debug', help='Enable or disable debugging', is_flag=True)
@click.option('--accesslog', help='Enable or disable access log', is_flag=True)
def start(host, port, workers, debug, accesslog):
    if debug:
        os.environ['DRUGSTATS_DB_ECHO'] = 'True'
    configure_logging()
    api.run(
        host=host,
        port=port,
        workers=workers,
        debug=debug,
        auto_reload=debug,
        access_log=accesslog)


@click.group()
def server():
    pass


server.add_command(start)


@click.group()
def cli():
    pass


cli.add_command(server)


if __name__ == '__main__':
    cli()
