"""Shared fixtures for the bvt_reporter test suite."""

import pytest

from bvt_reporter.config import Settings


@pytest.fixture
def make_settings(tmp_path):
    """Build isolated settings; uploads are off unless a test turns them on."""

    def _make(**overrides) -> Settings:
        values = {
            "UPLOAD_REPORTS": False,
            "TOKEN": "test-token",
            "REPORT_SERVICE_URL": "http://collector.test/api/runs",
            "STORAGE_SERVICE_URL": "http://collector.test/api/storage",
            "BACKOFF_BASE_SECONDS": 1.0,
            "WORKING_DIR": tmp_path,
            "RUN_ID": None,
            "PROJECT_ID": None,
            "STATUS_UUID": None,
            "REPORT_FOLDER": None,
            "TEST_DATA_FILE": None,
            "REPAIR_COMMAND": None,
            "RERUN_COMMAND": None,
            "PREVIOUS_FAILED_STEPS": "",
            "MODE": "local",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
