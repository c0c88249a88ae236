"""Engine and session wiring tests."""

import pytest
from sqlalchemy import text

from stock_kernel.db.engine import _driver_url, is_postgres, session_scope

from tests.conftest import get_database_url, is_postgres_url


class TestDriverUrl:
    def test_bare_postgresql_uses_psycopg3(self):
        assert _driver_url("postgresql://u:p@h/db") == "postgresql+psycopg://u:p@h/db"

    @pytest.mark.parametrize(
        "url",
        ["postgresql+psycopg://u@h/db", "sqlite://", "sqlite:///stock.db"],
    )
    def test_explicit_urls_untouched(self, url):
        assert _driver_url(url) == url


def test_dialect_detection(engine):
    assert is_postgres(engine) == is_postgres_url(get_database_url())


class TestSessionScope:
    def test_commits_on_success(self, session_factory):
        with session_scope(session_factory) as session:
            session.execute(
                text(
                    "INSERT INTO stock_identity_locks (identity_key, version) "
                    "VALUES ('k1', 1)"
                )
            )
        with session_scope(session_factory) as session:
            count = session.execute(text("SELECT COUNT(*) FROM stock_identity_locks")).scalar()
        assert count == 1

    def test_rolls_back_on_error(self, session_factory, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                session.execute(
                    text(
                        "INSERT INTO stock_identity_locks (identity_key, version) "
                        "VALUES ('k2', 1)"
                    )
                )
                raise RuntimeError("boom")

        with session_scope(session_factory) as session:
            count = session.execute(text("SELECT COUNT(*) FROM stock_identity_locks")).scalar()
        assert count == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_savepoint_rollback_keeps_outer_work(self, session_factory):
        with session_scope(session_factory) as session:
            session.execute(
                text(
                    "INSERT INTO stock_identity_locks (identity_key, version) "
                    "VALUES ('outer', 1)"
                )
            )
            nested = session.begin_nested()
            session.execute(
                text(
                    "INSERT INTO stock_identity_locks (identity_key, version) "
                    "VALUES ('inner', 1)"
                )
            )
            nested.rollback()

        with session_scope(session_factory) as session:
            keys = session.execute(text("SELECT identity_key FROM stock_identity_locks")).scalars().all()
        assert keys == ["outer"]
