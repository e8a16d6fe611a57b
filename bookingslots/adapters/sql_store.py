"""
SQLAlchemy-backed schedule store.

Days are persisted as the canonical lowercase label (``"monday"``), times as
``HH:MM:SS`` text and dates as ``YYYY-MM-DD`` text, so no stored value
depends on the timezone of the process that wrote it.

Bookings are serialised per store:
- SQLite: every transaction starts with ``BEGIN IMMEDIATE``, taking the write
  lock before the availability re-check reads anything
- other backends: the day's ``business_hours`` row is read ``FOR UPDATE``
  inside the booking transaction
A transaction that cannot get its lock within ``lock_timeout_seconds`` fails
with ``StorageError``.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from pendulum import Date
from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    create_engine,
    event,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from ..config import AppConfig
from ..domain.days import DateInput, DayOfWeek, parse_calendar_date
from ..domain.exceptions import StorageError
from ..domain.intervals import Interval, format_time_of_day
from ..domain.models import (
    ANY_STAFF,
    Appointment,
    AppointmentStatus,
    Break,
    ClosureInfo,
    PartialClosure,
)

logger = logging.getLogger(__name__)

Base = declarative_base()
metadata = Base.metadata

DAY_OF_WEEK = Enum(
    DayOfWeek,
    name="day_of_week",
    values_callable=lambda days: [day.label for day in days],
    native_enum=False,
    validate_strings=True,
)

_NON_BLOCKING_STATUSES = [AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value]


class BusinessHour(Base):
    __tablename__ = 'business_hours'

    id = Column(Integer, primary_key=True)
    # One row per weekday; admin breaks hang off it
    day_of_week = Column(DAY_OF_WEEK, nullable=False, unique=True)
    open_time = Column(Text)
    close_time = Column(Text)

    breaks = relationship('BreakRow', back_populates='business_hour')


class WorkingHour(Base):
    __tablename__ = 'working_hours'

    id = Column(Integer, primary_key=True)
    staff_id = Column(Text, nullable=False, index=True)
    day_of_week = Column(DAY_OF_WEEK, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)


class BreakRow(Base):
    __tablename__ = 'breaks'

    id = Column(Integer, primary_key=True)
    business_hour_id = Column(ForeignKey('business_hours.id', ondelete='SET NULL'))
    staff_id = Column(Text)
    day_of_week = Column(DAY_OF_WEEK)
    name = Column(Text, nullable=False, server_default=text("''"))
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)

    business_hour = relationship('BusinessHour', back_populates='breaks')


class ShopClosure(Base):
    __tablename__ = 'shop_closures'

    id = Column(Integer, primary_key=True)
    date = Column(Text, nullable=False, index=True)
    reason = Column(Text, nullable=False, server_default=text("''"))
    is_full_day = Column(Boolean, nullable=False, default=True)
    start_time = Column(Text)
    end_time = Column(Text)


class AppointmentRow(Base):
    __tablename__ = 'appointments'
    __table_args__ = (Index('ix_appointments_date_staff', 'date', 'staff_id'),)

    id = Column(Text, primary_key=True)
    date = Column(Text, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'scheduled'"))
    staff_id = Column(Text)
    customer_name = Column(Text)
    notes = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))


def create_store_engine(database_url: str, lock_timeout_seconds: float = 5.0) -> Engine:
    """
    Create an engine configured for serialised bookings.

    Args:
        database_url: SQLAlchemy database URL
        lock_timeout_seconds: How long a transaction may wait for its lock
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        connect_args = {}
        if url.get_backend_name() == "postgresql":
            connect_args["options"] = f"-c lock_timeout={int(lock_timeout_seconds * 1000)}"
        return create_engine(
            url,
            pool_pre_ping=True,
            pool_timeout=lock_timeout_seconds,
            connect_args=connect_args,
        )

    # check_same_thread=False: sessions are used from worker threads
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": lock_timeout_seconds},
    )

    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, _):
        # SQLAlchemy emits BEGIN itself (below), not the driver
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def _interval(start: str, end: str) -> Interval:
    return Interval.parse(start, end)


class SqlScheduleTransaction:
    """
    Schedule reads and the appointment insert within one session transaction.

    With ``lock_day`` set, reading a day's business hours locks that row until
    the transaction ends.
    """

    def __init__(self, session: Session, lock_day: bool = False) -> None:
        self._session = session
        self._lock_day = lock_day

    @property
    def session(self) -> Session:
        return self._session

    def get_business_hours(self, day: DayOfWeek) -> Optional[Interval]:
        query = select(BusinessHour).where(BusinessHour.day_of_week == day)
        if self._lock_day:
            query = query.with_for_update()

        row = self._session.scalars(query).first()
        if row is None or not row.open_time or not row.close_time:
            return None
        return _interval(row.open_time, row.close_time)

    def get_working_hours(self, staff_id: str, day: DayOfWeek) -> List[Interval]:
        query = select(WorkingHour).where(WorkingHour.day_of_week == day)
        if staff_id != ANY_STAFF:
            query = query.where(WorkingHour.staff_id == staff_id)

        rows = self._session.scalars(query.order_by(WorkingHour.start_time)).all()
        return [_interval(row.start_time, row.end_time) for row in rows]

    def get_staff_working_hours(self, day: DayOfWeek) -> Dict[str, List[Interval]]:
        rows = self._session.scalars(
            select(WorkingHour)
            .where(WorkingHour.day_of_week == day)
            .order_by(WorkingHour.staff_id, WorkingHour.start_time)
        ).all()

        windows: Dict[str, List[Interval]] = {}
        for row in rows:
            windows.setdefault(row.staff_id, []).append(_interval(row.start_time, row.end_time))
        return windows

    def get_breaks(self, day: DayOfWeek, staff_id: Optional[str] = None) -> List[Break]:
        """
        Admin breaks are scoped by the business-hours row of ``day``;
        personal breaks by staff id and day.
        """
        day_matches = or_(BreakRow.day_of_week.is_(None), BreakRow.day_of_week == day)

        if staff_id is None:
            query = (
                select(BreakRow)
                .join(BusinessHour, BreakRow.business_hour_id == BusinessHour.id)
                .where(
                    BreakRow.staff_id.is_(None),
                    BusinessHour.day_of_week == day,
                    BusinessHour.open_time.is_not(None),
                    day_matches,
                )
            )
        else:
            query = select(BreakRow).where(BreakRow.staff_id == staff_id, day_matches)

        rows = self._session.scalars(query.order_by(BreakRow.start_time)).all()
        return [
            Break(
                interval=_interval(row.start_time, row.end_time),
                name=row.name or "",
                day_of_week=row.day_of_week,
                staff_id=row.staff_id,
            )
            for row in rows
        ]

    def get_closures(self, date: Date) -> ClosureInfo:
        rows = self._session.scalars(
            select(ShopClosure)
            .where(ShopClosure.date == parse_calendar_date(date).isoformat())
            .order_by(ShopClosure.id)
        ).all()

        full_day = [row for row in rows if row.is_full_day]
        partial = [
            PartialClosure(interval=_interval(row.start_time, row.end_time), reason=row.reason or "")
            for row in rows
            if not row.is_full_day
        ]

        return ClosureInfo(
            full_day=bool(full_day),
            reason=full_day[0].reason if full_day else None,
            partial=tuple(sorted(partial, key=lambda closure: closure.interval.start)),
        )

    def get_appointments(self, date: Date, staff_id: Optional[str] = None) -> List[Appointment]:
        query = select(AppointmentRow).where(
            AppointmentRow.date == parse_calendar_date(date).isoformat(),
            AppointmentRow.status.notin_(_NON_BLOCKING_STATUSES),
        )
        if staff_id is not None:
            query = query.where(AppointmentRow.staff_id == staff_id)

        rows = self._session.scalars(query.order_by(AppointmentRow.start_time)).all()
        return [
            Appointment(
                id=row.id,
                date=parse_calendar_date(row.date),
                interval=_interval(row.start_time, row.end_time),
                status=AppointmentStatus(row.status),
                staff_id=row.staff_id,
                customer_name=row.customer_name,
                notes=row.notes,
            )
            for row in rows
        ]

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        self._session.add(
            AppointmentRow(
                id=appointment.id,
                date=parse_calendar_date(appointment.date).isoformat(),
                start_time=format_time_of_day(appointment.interval.start),
                end_time=format_time_of_day(appointment.interval.end),
                status=appointment.status.value,
                staff_id=appointment.staff_id,
                customer_name=appointment.customer_name,
                notes=appointment.notes,
            )
        )
        self._session.flush()
        return appointment

    def add_closure(self, date: DateInput, reason: str = "", window: Optional[Interval] = None) -> None:
        self._session.add(
            ShopClosure(
                date=parse_calendar_date(date).isoformat(),
                reason=reason,
                is_full_day=window is None,
                start_time=format_time_of_day(window.start) if window else None,
                end_time=format_time_of_day(window.end) if window else None,
            )
        )


class SqlScheduleStore:
    """
    Schedule store on any SQLAlchemy-supported database.

    Every top-level read runs in its own short transaction. ``snapshot()``
    runs a series of reads in one, ``atomic()`` a whole booking.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str, lock_timeout_seconds: float = 5.0) -> "SqlScheduleStore":
        return cls(create_store_engine(database_url, lock_timeout_seconds))

    def create_schema(self) -> None:
        """Create any missing tables."""
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not create schedule schema: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _transaction(self, lock_day: bool = False, repeatable: bool = False) -> Iterator[SqlScheduleTransaction]:
        try:
            with self._session_factory() as session:
                with session.begin():
                    if repeatable and self.engine.dialect.name != "sqlite":
                        # One snapshot for every statement of the transaction;
                        # SQLite already holds its lock from BEGIN IMMEDIATE
                        session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
                    yield SqlScheduleTransaction(session, lock_day=lock_day)
        except SQLAlchemyError as exc:
            raise StorageError(f"Schedule store failure: {exc}") from exc

    @contextmanager
    def atomic(self) -> Iterator[SqlScheduleTransaction]:
        """One booking transaction; commits on normal exit, rolls back on error."""
        with self._transaction(lock_day=True) as transaction:
            yield transaction

    @contextmanager
    def snapshot(self) -> Iterator[SqlScheduleTransaction]:
        """Read-only transaction; every read in the block sees one committed state."""
        with self._transaction(repeatable=True) as transaction:
            yield transaction

    # -- reads ---------------------------------------------------------------

    def get_business_hours(self, day: DayOfWeek) -> Optional[Interval]:
        with self._transaction() as transaction:
            return transaction.get_business_hours(day)

    def get_working_hours(self, staff_id: str, day: DayOfWeek) -> List[Interval]:
        with self._transaction() as transaction:
            return transaction.get_working_hours(staff_id, day)

    def get_staff_working_hours(self, day: DayOfWeek) -> Dict[str, List[Interval]]:
        with self._transaction() as transaction:
            return transaction.get_staff_working_hours(day)

    def get_breaks(self, day: DayOfWeek, staff_id: Optional[str] = None) -> List[Break]:
        with self._transaction() as transaction:
            return transaction.get_breaks(day, staff_id)

    def get_closures(self, date: Date) -> ClosureInfo:
        with self._transaction() as transaction:
            return transaction.get_closures(date)

    def get_appointments(self, date: Date, staff_id: Optional[str] = None) -> List[Appointment]:
        with self._transaction() as transaction:
            return transaction.get_appointments(date, staff_id)

    # -- setup -------------------------------------------------------------

    def add_appointment(self, appointment: Appointment) -> Appointment:
        """Store an appointment as-is, without availability checks."""
        with self._transaction() as transaction:
            return transaction.insert_appointment(appointment)

    def add_closure(self, date: DateInput, reason: str = "", window: Optional[Interval] = None) -> None:
        """Record a full-day closure, or a partial one when ``window`` is given."""
        with self._transaction() as transaction:
            transaction.add_closure(date, reason, window)

    def load_config(self, config: AppConfig) -> None:
        """
        Insert the schedule described by ``config``.

        Admin breaks without a day are attached to every open day.
        """
        with self._transaction() as transaction:
            session = transaction.session
            rows_by_day = {}

            for day in DayOfWeek:
                window = config.business_window_for(day)
                if day.label not in config.business_hours:
                    continue
                row = BusinessHour(
                    day_of_week=day,
                    open_time=format_time_of_day(window.start) if window else None,
                    close_time=format_time_of_day(window.end) if window else None,
                )
                session.add(row)
                rows_by_day[day] = row
            session.flush()

            for break_config in config.breaks:
                brk = break_config.to_break()
                days = [brk.day_of_week] if brk.day_of_week is not None else list(rows_by_day)
                for day in days:
                    hours = rows_by_day.get(day)
                    session.add(
                        BreakRow(
                            business_hour_id=hours.id if hours is not None else None,
                            day_of_week=day,
                            name=brk.name,
                            start_time=format_time_of_day(brk.interval.start),
                            end_time=format_time_of_day(brk.interval.end),
                        )
                    )

            for member in config.staff:
                for day in DayOfWeek:
                    for window in member.windows_for(day):
                        session.add(
                            WorkingHour(
                                staff_id=member.id,
                                day_of_week=day,
                                start_time=format_time_of_day(window.start),
                                end_time=format_time_of_day(window.end),
                            )
                        )
                for break_config in member.breaks:
                    brk = break_config.to_break(staff_id=member.id)
                    session.add(
                        BreakRow(
                            staff_id=member.id,
                            day_of_week=brk.day_of_week,
                            name=brk.name,
                            start_time=format_time_of_day(brk.interval.start),
                            end_time=format_time_of_day(brk.interval.end),
                        )
                    )

            for closure in config.closures:
                partial = None if closure.is_full_day else closure.to_partial()
                session.add(
                    ShopClosure(
                        date=closure.date,
                        reason=closure.reason,
                        is_full_day=closure.is_full_day,
                        start_time=format_time_of_day(partial.interval.start) if partial else None,
                        end_time=format_time_of_day(partial.interval.end) if partial else None,
                    )
                )

        logger.info("Loaded schedule configuration into %s", self.engine.url.render_as_string(hide_password=True))
