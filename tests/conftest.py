"""
Pytest configuration and fixtures for noteguard tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from noteguard.schema import DriveFile, InspectionSubject, Role, UserRecord


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def user() -> UserRecord:
    """A local user with a custom display name."""
    return UserRecord(id="u1", username="alice", name="Alice Liddell")


@pytest.fixture
def roles() -> list[Role]:
    """Roles assigned to the test user."""
    return [Role(id="user", name="User")]


@pytest.fixture
def plain_subject() -> InspectionSubject:
    """A text-only note with no files, mentions or hashtags."""
    return InspectionSubject(user_id="u1", text="hello world")


@pytest.fixture
def files_subject() -> InspectionSubject:
    """A note with two attached images."""
    return InspectionSubject(
        user_id="u1",
        text=None,
        files=[
            DriveFile(size=600, md5="aaa", type="image/png", blurhash="hashA"),
            DriveFile(size=500, md5="bbb", type="image/jpeg"),
        ],
    )


@pytest.fixture
def sample_meta_yaml() -> str:
    """A configuration prohibiting large attachments."""
    return """
prohibitedNotePattern:
  type: and
  values:
    - type: hasFiles
    - type: fileTotalSizeMoreThanOrEq
      size: 1000
"""


@pytest.fixture
def unset_meta_yaml() -> str:
    """A configuration with no formula."""
    return """
prohibitedNotePattern: {}
"""
