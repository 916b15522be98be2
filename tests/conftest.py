"""
Pytest fixtures for the procurement kernel test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Session factory for multi-session concurrency tests
- Deterministic clock
- Seeded hierarchy, program reference data and user roles
- Captured structured logs

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped and recreated per test.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from procurement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from procurement_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from procurement_kernel.domain.clock import DeterministicClock
from procurement_kernel.domain.dtos import ForecastLine
from procurement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from procurement_kernel.models.org_unit import (
    FacilityModel,
    RegionModel,
    UserRoleModel,
    WoredaModel,
    ZoneModel,
)
from procurement_kernel.models.reference import (
    FundingAllocationModel,
    FundingSourceModel,
    ProgramModel,
    ProgramSettingsModel,
)
from procurement_kernel.services.procurement_service import ProcurementService

YEAR = 2025


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture procurement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.create_draft(...)
            logs = captured_logs()
            assert any(r["message"] == "draft_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("procurement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Engine on a fresh database with all tables and listeners installed."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'procurement_test.db'}"
    eng = init_engine_from_url(url, pool_size=10, max_overflow=10)
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    if os.environ.get("DATABASE_URL"):
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Seed data
# =============================================================================


@dataclass
class Org:
    """Two regions; region 1 has two woredas, region 2 one."""

    region_1: UUID
    region_2: UUID
    zone_1: UUID
    zone_2: UUID
    woreda_1: UUID
    woreda_2: UUID
    woreda_3: UUID
    facility_1: UUID
    facility_1b: UUID
    facility_2: UUID
    facility_3: UUID


@dataclass
class Reference:
    program_id: UUID
    other_program_id: UUID
    source_a: UUID
    source_b: UUID


@dataclass
class Users:
    officer: UUID
    officer_3: UUID
    woreda_1_user: UUID
    woreda_2_user: UUID
    zone_1_user: UUID
    regional_1_user: UUID
    national_user: UUID
    program_officer: UUID
    admin: UUID
    viewer: UUID
    no_role: UUID = field(default_factory=uuid4)


@pytest.fixture
def org(session) -> Org:
    r1 = RegionModel(name="Region One", code="R1")
    r2 = RegionModel(name="Region Two", code="R2")
    session.add_all([r1, r2])
    session.flush()
    z1 = ZoneModel(name="Zone One", region_id=r1.id)
    z2 = ZoneModel(name="Zone Two", region_id=r2.id)
    session.add_all([z1, z2])
    session.flush()
    w1 = WoredaModel(name="Woreda One", zone_id=z1.id)
    w2 = WoredaModel(name="Woreda Two", zone_id=z1.id)
    w3 = WoredaModel(name="Woreda Three", zone_id=z2.id)
    session.add_all([w1, w2, w3])
    session.flush()
    f1 = FacilityModel(name="Health Center 1", woreda_id=w1.id)
    f1b = FacilityModel(name="Health Post 1b", woreda_id=w1.id)
    f2 = FacilityModel(name="Health Center 2", woreda_id=w2.id)
    f3 = FacilityModel(name="Hospital 3", woreda_id=w3.id)
    session.add_all([f1, f1b, f2, f3])
    session.commit()
    return Org(
        region_1=r1.id, region_2=r2.id,
        zone_1=z1.id, zone_2=z2.id,
        woreda_1=w1.id, woreda_2=w2.id, woreda_3=w3.id,
        facility_1=f1.id, facility_1b=f1b.id, facility_2=f2.id, facility_3=f3.id,
    )


@pytest.fixture
def reference(session) -> Reference:
    program = ProgramModel(name="Malaria", code="MAL")
    other = ProgramModel(name="Tuberculosis", code="TB")
    source_a = FundingSourceModel(name="Global Fund", code="GF")
    source_b = FundingSourceModel(name="Treasury", code="TRE")
    session.add_all([program, other, source_a, source_b])
    session.flush()
    session.add_all([
        ProgramSettingsModel(
            program_id=program.id, year=YEAR,
            psm_percent=Decimal("10"), budget_total=Decimal("1000"),
        ),
        FundingAllocationModel(
            program_id=program.id, year=YEAR,
            funding_source_id=source_a.id, allocated_amount=Decimal("500"),
        ),
        FundingAllocationModel(
            program_id=program.id, year=YEAR,
            funding_source_id=source_b.id, allocated_amount=Decimal("300"),
        ),
        FundingAllocationModel(
            program_id=program.id, year=YEAR + 1,
            funding_source_id=source_a.id, allocated_amount=Decimal("9999"),
        ),
    ])
    session.commit()
    return Reference(
        program_id=program.id,
        other_program_id=other.id,
        source_a=source_a.id,
        source_b=source_b.id,
    )


def add_role(session: Session, role: str, admin_level: str, **scope_ids) -> UUID:
    user_id = uuid4()
    session.add(UserRoleModel(user_id=user_id, role=role, admin_level=admin_level, **scope_ids))
    return user_id


@pytest.fixture
def users(session, org) -> Users:
    result = Users(
        officer=add_role(session, "facility_logistic_officer", "facility", facility_id=org.facility_1),
        officer_3=add_role(session, "facility_manager", "facility", facility_id=org.facility_3),
        woreda_1_user=add_role(session, "woreda_user", "woreda", woreda_id=org.woreda_1),
        woreda_2_user=add_role(session, "woreda_user", "woreda", woreda_id=org.woreda_2),
        zone_1_user=add_role(session, "zone_user", "zone", zone_id=org.zone_1),
        regional_1_user=add_role(session, "regional_user", "regional", region_id=org.region_1),
        national_user=add_role(session, "national_user", "national"),
        program_officer=add_role(session, "program_officer", "national"),
        admin=add_role(session, "admin", "national"),
        viewer=add_role(session, "viewer", "woreda", woreda_id=org.woreda_1),
    )
    session.commit()
    return result


@pytest.fixture
def forecast_lines(reference) -> list[ForecastLine]:
    """Lines A 100@2, B 200@1.5, C 50@4 (subtotal 700)."""
    return [
        ForecastLine("Artemether-Lumefantrine", "pack", Decimal("100"), Decimal("2"),
                     line_ref="fc-A", program_id=reference.program_id, year=YEAR),
        ForecastLine("Rapid Diagnostic Test", "kit", Decimal("200"), Decimal("1.5"),
                     line_ref="fc-B", program_id=reference.program_id, year=YEAR),
        ForecastLine("Bed Net", "piece", Decimal("50"), Decimal("4"),
                     line_ref="fc-C", program_id=reference.program_id, year=YEAR),
    ]


@pytest.fixture
def service(session, deterministic_clock) -> ProcurementService:
    return ProcurementService(session, clock=deterministic_clock)


@pytest.fixture
def make_service(session_factory, deterministic_clock):
    """Build a service on its own session (closed at teardown)."""
    sessions: list[Session] = []

    def _make() -> ProcurementService:
        s = session_factory()
        sessions.append(s)
        return ProcurementService(s, clock=deterministic_clock)

    yield _make

    for s in sessions:
        s.rollback()
        s.close()


@pytest.fixture
def draft(service, org, reference, users, forecast_lines):
    """A committed draft at facility 1 with the three standard lines."""
    return service.create_draft(
        reference.program_id, YEAR, None, forecast_lines,
        facility_id=org.facility_1, actor_id=users.officer,
    )


@pytest.fixture
def submitted(service, draft, users):
    service.transition(draft.id, "submitted", actor_id=users.officer)
    return service.get_request(draft.id, actor_id=users.officer)


def item_named(request, name: str):
    return next(i for i in request.items if i.item_name == name)
