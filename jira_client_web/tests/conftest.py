"""
Pytest configuration for jira_client_web. Required credentials must exist before the app module
is imported (it refuses to start without them).
"""
import os

import pytest

os.environ["ATLASSIAN_CLIENT_ID"] = "test-client-id-1234567890"
os.environ["ATLASSIAN_CLIENT_SECRET"] = "test-client-secret"
os.environ["CALLBACK_URL"] = "http://localhost:3000/auth/callback"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["APP_ENV"] = "test"
# Keep real endpoints out of tests
os.environ["ATLASSIAN_TOKEN_URL"] = "https://auth.example.test/oauth/token"
os.environ["ATLASSIAN_AUTHORIZATION_URL"] = "https://auth.example.test/authorize"
os.environ["ATLASSIAN_API_BASE_URL"] = "https://api.example.test"

from jira_client_web.config import load_settings  # noqa: E402


@pytest.fixture
def settings():
    """Settings built from the test environment above (no .env lookup)."""
    return load_settings(dict(os.environ))
