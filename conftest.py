"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and provides the
workbook and settings fixtures shared by the test modules.
"""
import os
import sys

import pytest

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from candidate_upload import EXPECTED_HEADERS, XLSX_CONTENT_TYPE, UploadedFile, write_workbook  # noqa: E402
from config import Settings  # noqa: E402


@pytest.fixture
def valid_workbook():
    """
    Fixture providing workbook bytes with the expected headers and one valid row.

    Returns:
        bytes: .xlsx content
    """
    return write_workbook([EXPECTED_HEADERS, ["Senior", 5, "Immediate"]])


@pytest.fixture
def valid_upload(valid_workbook):
    """
    Fixture providing a valid UploadedFile.

    Returns:
        UploadedFile: an .xlsx upload that passes every file check
    """
    return UploadedFile(filename="candidate.xlsx", content_type=XLSX_CONTENT_TYPE, content=valid_workbook)


@pytest.fixture(scope="session")
def test_settings(tmp_path_factory):
    """
    Fixture providing settings that allow the TestClient's address.

    Returns:
        Settings: settings isolated from any env file
    """
    return Settings(_env_file=None, allowed_ips="testclient", log_dir=str(tmp_path_factory.mktemp("logs")))
