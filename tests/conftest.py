"""Test configuration for pytest."""

import logging
import os
import pytest


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    os.environ['MEMFLOW_LOG_LEVEL'] = 'WARNING'

    logging.getLogger().setLevel(logging.WARNING)

    # Skipped images and pairs warn by design; keep test output quiet
    for logger_name in ['memflow.analysis', 'memflow.similarity.cluster']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)
