"""
Configuration for pytest and shared fixtures.
"""

import datetime
import os
import sys
import tempfile

import pytest
import pytz

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set environment variables for testing
os.environ['DEBUG_MODE'] = 'True'
os.environ['FLASHDECK_TIMEZONE'] = 'UTC'

from flashdeck.database import Database
from flashdeck.repository import SQLiteDeckRepository, SQLiteFlashcardRepository


@pytest.fixture
def reference_time():
    """Create a fixed reference time for consistent testing."""
    return datetime.datetime(2025, 1, 1, 12, 0, 0, tzinfo=pytz.utc)


@pytest.fixture
def test_db():
    """Create a temporary test database."""
    with tempfile.TemporaryDirectory() as temp_dir:
        db = Database(os.path.join(temp_dir, "test.db"))
        yield db
        db.close()


@pytest.fixture
def deck_repo(test_db):
    """Deck repository backed by the temporary database."""
    return SQLiteDeckRepository(test_db)


@pytest.fixture
def card_repo(test_db):
    """Flashcard repository backed by the temporary database."""
    return SQLiteFlashcardRepository(test_db)
