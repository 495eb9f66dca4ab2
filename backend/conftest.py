"""
Root conftest.py for all backend tests.

This file makes fixtures available to all test files across all apps.
"""

# ============================================================================
# IMPORT ALL FIXTURES FROM core_backend/tests/fixtures.py
# ============================================================================
from core_backend.tests.fixtures import *  # noqa: F401,F403
