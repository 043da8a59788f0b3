"""Tests for engine construction, transaction scope and retry classification."""

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from fulfillment_kernel.db.engine import (
    begin_write,
    build_engine,
    build_session_factory,
    create_tables,
    is_transient_error,
    session_scope,
    supports_skip_locked,
)
from fulfillment_kernel.models.pool_item import PoolItem


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pg error {pgcode}")
        self.pgcode = pgcode


class TestTransientErrors:

    @pytest.mark.parametrize("message", ["database is locked", "database table is locked"])
    def test_sqlite_lock_errors(self, message):
        assert is_transient_error(OperationalError("UPDATE", {}, Exception(message)))

    @pytest.mark.parametrize("pgcode", ["40001", "40P01", "55P03"])
    def test_postgres_conflict_codes(self, pgcode):
        assert is_transient_error(OperationalError("UPDATE", {}, _PgError(pgcode)))

    def test_missing_table_is_not_transient(self):
        assert not is_transient_error(OperationalError("SELECT", {}, Exception("no such table: pool_items")))

    def test_constraint_violation_is_not_transient(self):
        assert not is_transient_error(IntegrityError("INSERT", {}, _PgError("23505")))

    def test_programming_error_is_not_transient(self):
        assert not is_transient_error(ProgrammingError("SELECT", {}, Exception("syntax error")))

    def test_non_database_error(self):
        assert not is_transient_error(ValueError("nope"))


class TestSessionScope:

    def test_commits_on_success(self, session_factory, product_id, seller_id, deterministic_clock):
        with session_scope(session_factory) as session:
            session.add(PoolItem(
                product_id=product_id,
                seller_id=seller_id,
                item_type="license_key",
                payload={"key": "K"},
                display_order=0,
                created_at=deterministic_clock.now(),
            ))

        with session_scope(session_factory) as session:
            assert session.scalar(select(func.count(PoolItem.id))) == 1

    def test_rolls_back_on_error(self, session_factory, product_id, seller_id, deterministic_clock):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as session:
                session.add(PoolItem(
                    product_id=product_id,
                    seller_id=seller_id,
                    item_type="license_key",
                    payload={"key": "K"},
                    display_order=0,
                    created_at=deterministic_clock.now(),
                ))
                session.flush()
                raise RuntimeError("boom")

        with session_scope(session_factory) as session:
            assert session.scalar(select(func.count(PoolItem.id))) == 0

    def test_logs_transaction_lifecycle(self, session_factory, captured_logs):
        with session_scope(session_factory):
            pass
        messages = [r["message"] for r in captured_logs()]
        assert "transaction_started" in messages
        assert "transaction_committed" in messages


class TestSqliteEngine:

    def test_begin_write_takes_reserved_lock(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'lock.db'}", pool_timeout=0)
        create_tables(engine)
        factory = build_session_factory(engine)

        writer = factory()
        try:
            begin_write(writer)
            other = factory()
            try:
                # A second writer cannot start while the first holds the lock
                with pytest.raises(OperationalError) as exc_info:
                    begin_write(other)
                assert is_transient_error(exc_info.value)
            finally:
                other.close()
        finally:
            writer.rollback()
            writer.close()
            engine.dispose()

    def test_plain_reads_do_not_lock(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'read.db'}", pool_timeout=0)
        create_tables(engine)
        factory = build_session_factory(engine)

        writer = factory()
        reader = factory()
        try:
            begin_write(writer)
            assert reader.scalar(select(func.count(PoolItem.id))) == 0
        finally:
            reader.close()
            writer.rollback()
            writer.close()
            engine.dispose()

    def test_foreign_keys_pragma(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'fk.db'}")
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
        engine.dispose()

    def test_in_memory_database_shared_across_sessions(self):
        engine = build_engine("sqlite://")
        create_tables(engine)
        factory = build_session_factory(engine)
        with session_scope(factory) as session:
            assert session.scalar(select(func.count(PoolItem.id))) == 0
        engine.dispose()

    def test_skip_locked_only_on_postgres(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'x.db'}")
        assert supports_skip_locked(engine) is False
        engine.dispose()
