"""
Main conftest file that imports and re-exports all fixtures from modular files.
"""

import os

from dotenv import load_dotenv

# Explicitly load the test environment variables before the service settings
# are instantiated on first import
dotenv_path = os.path.join(os.path.dirname(__file__), "..", ".env.test")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path, override=True)
else:
    print(f"Warning: .env.test file not found at {dotenv_path}")

from tests.fixtures.db import db_engine, session_factory  # noqa: E402,F401
from tests.fixtures.helpers import (  # noqa: E402,F401
    count_rows,
    fetch_all,
    listing_factory,
)
from tests.fixtures.mocks import (  # noqa: E402,F401
    http_client,
    image_host,
    images_root,
    reconciliation_engine,
    source_api,
    test_settings,
)
