"""
Test configuration and fixtures
"""
import logging
import sys
from pathlib import Path

# Add src to Python path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"

sys.path.insert(0, str(src_path))

import pytest


@pytest.fixture(autouse=True)
def reset_tokensale_logging():
    """Drop handlers installed by setup_logging() so streams closed by a test are never reused."""
    yield
    logger = logging.getLogger("tokensale")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
