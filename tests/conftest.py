# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

import os

TEST_ENV_DEFAULTS = {
    "DRUGSTATS_DB_HOST": "127.0.0.1",
    "DRUGSTATS_DB_PORT": "5432",
    "DRUGSTATS_DB_USER": "postgres",
    "DRUGSTATS_DB_PASSWORD": "",
    "DRUGSTATS_DB_DATABASE": "drugstats",
    "DRUGSTATS_DB_POOL_MIN_SIZE": "1",
    "DRUGSTATS_DB_POOL_MAX_SIZE": "5",
    "DRUGSTATS_DB_SSLMODE": "disable",
    "DRUGSTATS_DB_ECHO": "False",
}

for key, value in TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(key, value)
