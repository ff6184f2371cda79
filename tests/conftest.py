# tests/conftest.py
import os

import pytest

from vectordb_rpc.config import CONFIG_SCHEMA, VectorDBSettings
from tests.fixtures import *


@pytest.fixture(autouse=True, scope="function")
def reset_vectordb_settings_singleton():
    """
    Fixture to reset the VectorDBSettings singleton and relevant env vars before each test.
    This ensures complete test isolation with respect to configuration.
    """
    VectorDBSettings._instance = None

    env_keys_to_clear = list(CONFIG_SCHEMA.keys())
    original_env_values = {key: os.environ.get(key) for key in env_keys_to_clear}

    for key in env_keys_to_clear:
        if key in os.environ:
            del os.environ[key]

    yield

    for key, value in original_env_values.items():
        if value is not None:
            os.environ[key] = value
        elif key in os.environ:
            del os.environ[key]

    VectorDBSettings._instance = None
