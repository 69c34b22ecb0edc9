"""
Pytest configuration and shared fixtures for School Moodle MCP tests.

This module provides common test fixtures: environment, catalog, a mocked
MoodleClient and realistic Moodle payloads.
"""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

SITE_URL = "https://moodle.example.com"
TOKEN = "test-token-123"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_env_vars(temp_dir):
    """Provide mock environment variables for testing."""
    return {
        "MOODLE_URL": f"{SITE_URL}/webservice/rest/server.php",
        "MOODLE_TIMEOUT": "10",
        "MOODLE_VERIFY_SSL": "false",
        "FORUM_DIGEST_SIZE": "3",
        "LOG_LEVEL": "DEBUG",
        "AUDIT_ENABLED": "true",
        "AUDIT_LOG_PATH": str(temp_dir / "logs" / "audit.jsonl"),
        "SERVER_NAME": "test-moodle-mcp",
        "SERVER_VERSION": "0.0.1-test",
    }


@pytest.fixture
def mock_config(mock_env_vars, monkeypatch):
    """Set up mock environment variables and return a Config built from them."""
    for key, value in mock_env_vars.items():
        monkeypatch.setenv(key, value)

    from school_moodle_mcp.config import Config

    return Config()


@pytest.fixture(scope="session")
def catalog():
    """The packaged tool catalog."""
    from school_moodle_mcp.catalog import CatalogLoader

    return CatalogLoader().load()


@pytest.fixture
def validator(catalog):
    from school_moodle_mcp.catalog import InputValidator

    return InputValidator(catalog)


@pytest.fixture
def mock_client():
    """
    A MoodleClient double.

    Coroutine methods of the spec class become AsyncMocks automatically.
    """
    from school_moodle_mcp.moodle.client import MoodleClient

    client = MagicMock(spec=MoodleClient)
    client.site_url = SITE_URL
    return client


@pytest.fixture
def course_six_sections():
    """Course 6: one section with an assignment and a quiz."""
    return [
        {
            "id": 60,
            "name": "General",
            "modules": [
                {
                    "id": 101,
                    "modname": "assign",
                    "name": "Activity 1",
                    "instance": 11,
                    "url": f"{SITE_URL}/mod/assign/view.php?id=101",
                    "timemodified": 1700000000,
                },
                {
                    "id": 102,
                    "modname": "quiz",
                    "name": "Activity 2",
                    "instance": 12,
                },
            ],
        }
    ]


@pytest.fixture
def sample_courses():
    return [
        {"id": 1, "fullname": "Moodle Site", "shortname": "site"},
        {"id": 6, "fullname": "Matemática 6º ano", "shortname": "MAT6"},
        {"id": 7, "fullname": "História", "shortname": "HIS7"},
        {"id": 16, "fullname": "Ciências", "shortname": "CN"},
        {"id": 8, "fullname": "Português", "shortname": "PT8"},
    ]


@pytest.fixture
def module_factory():
    """Build CourseModule instances with sensible defaults."""
    from school_moodle_mcp.moodle.models import CourseModule

    def make(**overrides):
        data = {
            "id": 200,
            "course": 6,
            "modname": "page",
            "instance": 20,
            "name": "Sample activity",
        }
        data.update(overrides)
        return CourseModule.from_api(data)

    return make


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
