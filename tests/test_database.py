"""
Unit tests for DatabaseManager lifecycle and transactions.
"""

import pytest

from core.database import DatabaseManager
from core.exceptions import DatabaseUnavailableError
from models import User


@pytest.fixture
def db():
    manager = DatabaseManager("sqlite://")
    manager.initialize()
    yield manager
    manager.cleanup()


class TestLifecycle:
    """Test initialize/cleanup behavior."""

    def test_not_initialized(self):
        manager = DatabaseManager("sqlite://")

        assert manager.is_initialized is False
        assert manager.ping() is False
        with pytest.raises(RuntimeError):
            _ = manager.engine
        with pytest.raises(RuntimeError):
            with manager.session_scope():
                pass

    def test_initialize_twice_raises(self, db):
        with pytest.raises(RuntimeError):
            db.initialize()

    def test_cleanup_is_idempotent(self, db):
        db.cleanup()
        db.cleanup()

        assert db.is_initialized is False

    def test_unreachable_database(self, tmp_path):
        missing_dir = tmp_path / "does-not-exist" / "catfecito.db"
        manager = DatabaseManager(f"sqlite:///{missing_dir}")

        with pytest.raises(DatabaseUnavailableError):
            manager.initialize()
        assert manager.is_initialized is False

    def test_context_manager(self):
        with DatabaseManager("sqlite://") as manager:
            assert manager.ping() is True
        assert manager.is_initialized is False


class TestSessionScope:
    """Test commit/rollback semantics."""

    def test_commits_on_success(self, db):
        with db.session_scope() as session:
            session.add(User(name="Ana", email="ana@example.com"))

        with db.session_scope() as session:
            assert session.query(User).count() == 1

    def test_rolls_back_on_error(self, db):
        with pytest.raises(ValueError):
            with db.session_scope() as session:
                session.add(User(name="Ana", email="ana@example.com"))
                session.flush()
                raise ValueError("boom")

        with db.session_scope() as session:
            assert session.query(User).count() == 0
