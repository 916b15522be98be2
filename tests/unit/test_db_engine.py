"""Tests for engine lifecycle and session_scope."""

import pytest
from sqlalchemy import event, select, text

from procurement_kernel.config import KernelSettings
from procurement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_settings,
    init_engine_from_url,
    is_sqlite,
    reset_engine,
    session_scope,
)
from procurement_kernel.db.immutability import (
    _check_item_update,
    _check_psm_snapshot_immutability,
    unregister_immutability_listeners,
)
from procurement_kernel.models.reference import ProgramModel
from procurement_kernel.models.request import ProcurementRequestModel, RequestItemModel


@pytest.fixture
def memory_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


class TestLifecycle:
    def test_uninitialized_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_from_settings(self, tmp_path):
        settings = KernelSettings(database_url=f"sqlite:///{tmp_path / 'k.db'}")
        try:
            engine = init_engine_from_settings(settings)
            assert get_engine() is engine
            assert is_sqlite()
        finally:
            reset_engine()

    def test_foreign_keys_enabled(self, memory_engine):
        with memory_engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_installs_immutability_listeners(self):
        unregister_immutability_listeners()
        init_engine_from_url("sqlite://")
        try:
            assert event.contains(RequestItemModel, "before_update", _check_item_update)
            assert event.contains(
                ProcurementRequestModel, "before_update", _check_psm_snapshot_immutability,
            )
        finally:
            reset_engine()


class TestSessionScope:
    def test_commits_on_success(self, memory_engine):
        with session_scope() as session:
            session.add(ProgramModel(name="Family Planning", code="FP"))
        with session_scope() as session:
            assert session.execute(select(ProgramModel.code)).scalar_one() == "FP"

    def test_rolls_back_on_error(self, memory_engine):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(ProgramModel(name="Nutrition", code="NUT"))
                session.flush()
                raise ValueError("abort")
        with session_scope() as session:
            assert session.execute(select(ProgramModel)).first() is None
