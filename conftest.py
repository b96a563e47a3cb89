"""
Pytest configuration for the pbirag test suite.

``pbirag.config.settings`` validates the environment at import time, so
the required variables are seeded here, before any test module imports
the package.  Real credentials are never needed: every external
collaborator is replaced by a fake in the tests.
"""

import os

os.environ.setdefault("GOOGLE_API_KEY", "test-google-api-key")
os.environ["ENV"] = "prod"
os.environ["HISTORY_MAX_TURNS"] = "20"
