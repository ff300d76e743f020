import os

# Keep the service database in memory for tests.
os.environ.setdefault("SKYSYNC_DB_URL", "sqlite://")

import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"
