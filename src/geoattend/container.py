from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.arbiter import CheckInArbiter
from .attendance.factory import CheckInStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .attendance.verifier import ExternalVerifier, VerifierGateway
from .core.constants import (
    DEFAULT_CLOSING_SOON_MINUTES,
    DEFAULT_SCHEDULER_INTERVAL_SECONDS,
    DEFAULT_TOKEN_ROTATION_SECONDS,
    DEFAULT_VERIFIER_TIMEOUT_SECONDS,
)
from .database.connection import DBConfig, DatabaseConnection
from .notifications.events import NotificationRequester
from .reports.service import AttendanceReportService
from .scheduler.driver import SessionScheduler
from .sessions.lifecycle import SessionLifecycle
from .sessions.locks import SessionLockRegistry
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import SessionService
from .sessions.tokens import TokenRotator


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    sessions_repo: SessionRepository
    attendance_repo: AttendanceRepository

    tokens: TokenRotator
    locks: SessionLockRegistry
    verifier_gateway: VerifierGateway
    lifecycle: SessionLifecycle

    session_service: SessionService
    attendance_service: AttendanceService
    report_service: AttendanceReportService
    scheduler: SessionScheduler


def assemble(
    sessions_repo: SessionRepository,
    attendance_repo: AttendanceRepository,
    *,
    conn: Optional[DatabaseConnection] = None,
    token_rotation_seconds: int = DEFAULT_TOKEN_ROTATION_SECONDS,
    verifier: Optional[ExternalVerifier] = None,
    verifier_timeout_seconds: float = DEFAULT_VERIFIER_TIMEOUT_SECONDS,
    closing_soon_minutes: int = DEFAULT_CLOSING_SOON_MINUTES,
    scheduler_interval_seconds: float = DEFAULT_SCHEDULER_INTERVAL_SECONDS,
    notifier: Optional[NotificationRequester] = None,
) -> Container:
    """Wire services over the given repositories."""
    tokens = TokenRotator(rotation_seconds=token_rotation_seconds)
    locks = SessionLockRegistry()
    gateway = VerifierGateway(verifier, timeout_seconds=verifier_timeout_seconds)
    lifecycle = SessionLifecycle(
        sessions_repo,
        tokens,
        locks=locks,
        notifier=notifier,
        closing_soon_minutes=closing_soon_minutes,
    )

    session_service = SessionService(sessions_repo, lifecycle)
    arbiter = CheckInArbiter(attendance_repo, CheckInStrategyFactory(tokens, gateway))
    attendance_service = AttendanceService(attendance_repo, lifecycle, arbiter)
    report_service = AttendanceReportService(attendance_repo)
    scheduler = SessionScheduler(
        lifecycle,
        sessions_repo,
        session_service=session_service,
        interval_seconds=scheduler_interval_seconds,
    )

    return Container(
        conn=conn,
        sessions_repo=sessions_repo,
        attendance_repo=attendance_repo,
        tokens=tokens,
        locks=locks,
        verifier_gateway=gateway,
        lifecycle=lifecycle,
        session_service=session_service,
        attendance_service=attendance_service,
        report_service=report_service,
        scheduler=scheduler,
    )


def build_container(settings, *, verifier: Optional[ExternalVerifier] = None) -> Container:
    conn = DatabaseConnection(DBConfig.from_dict(getattr(settings, "DB_CONFIG")))

    return assemble(
        MySQLSessionRepository(conn),
        MySQLAttendanceRepository(conn),
        conn=conn,
        token_rotation_seconds=int(getattr(settings, "TOKEN_ROTATION_SECONDS", DEFAULT_TOKEN_ROTATION_SECONDS)),
        verifier=verifier,
        verifier_timeout_seconds=float(getattr(settings, "VERIFIER_TIMEOUT_SECONDS", DEFAULT_VERIFIER_TIMEOUT_SECONDS)),
        closing_soon_minutes=int(getattr(settings, "CLOSING_SOON_MINUTES", DEFAULT_CLOSING_SOON_MINUTES)),
        scheduler_interval_seconds=float(
            getattr(settings, "SCHEDULER_INTERVAL_SECONDS", DEFAULT_SCHEDULER_INTERVAL_SECONDS)
        ),
    )
