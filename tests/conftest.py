# tests/conftest.py
import pytest

from minibus.core import log

@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging():
    # LOG_LEVEL / LOG_JSON / .env are honoured
    log.setup()
    yield
