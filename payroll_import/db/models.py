"""
Target tables for the import profiles and the SQL-backed record store.

Each table carries a unique constraint on its profile's conflict key so
repeated imports upsert instead of duplicating rows.
"""
import asyncio
import logging
from datetime import date, datetime, timezone
from functools import partial
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.engine import Engine

from payroll_import.db.session import Base
from payroll_import.domain.imports.importer import WriteResult

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class Employee(Base):
    __tablename__ = "employees"
    __table_args__ = (UniqueConstraint("company_code", "employee_number", name="uq_employees_company_number"),)

    id = Column(Integer, primary_key=True, index=True)
    employee_number = Column(String(50), nullable=False, index=True)
    company_code = Column(String(10), nullable=False)
    full_name = Column(String(255))
    first_name = Column(String(100))
    last_name = Column(String(100))
    sin = Column(String(9))
    birth_date = Column(Date)
    hire_date = Column(Date)
    job_title = Column(String(255))
    home_department = Column(String(255))
    province_code = Column(String(2))
    status = Column(String(20))
    rate_type = Column(String(20))
    rate = Column(Float)
    standard_hours = Column(Float)
    email = Column(String(255))
    phone = Column(String(50))
    address_line1 = Column(String(255))
    city = Column(String(100))
    postal_code = Column(String(10))
    union_code = Column(String(20))
    pay_frequency = Column(String(20))
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class EmployeeIdentifier(Base):
    __tablename__ = "employee_ids"
    __table_args__ = (UniqueConstraint("employee_id", name="uq_employee_ids_employee_id"),)

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String(50), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    job_title = Column(String(255))
    department = Column(String(255))
    province = Column(String(2))
    hire_date = Column(Date)
    pay_type = Column(String(20))
    salary = Column(Float)
    hourly_rate = Column(Float)
    standard_hours = Column(Float)
    deduction_codes = Column(String(255))
    union_override = Column(String(20))
    province_override = Column(String(2))
    union = Column(String(20))
    group = Column(String(50))
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class PayCode(Base):
    __tablename__ = "pay_codes"
    __table_args__ = (UniqueConstraint("company_code", "code", name="uq_pay_codes_company_code"),)

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), nullable=False)
    company_code = Column(String(10), nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(20), nullable=False)
    description = Column(String(500))
    taxable_federal = Column(Boolean)
    taxable_cpp = Column(Boolean)
    taxable_ei = Column(Boolean)
    rate_type = Column(String(20), nullable=False)
    multiplier = Column(Float)
    flat_hourly_rate = Column(Float)
    requires_hours = Column(Boolean)
    requires_amount = Column(Boolean)
    gl_earnings_code = Column(String(50))
    province = Column(String(2))
    union_code = Column(String(20))
    worksite_code = Column(String(50))
    effective_from = Column(Date)
    effective_to = Column(Date)
    active = Column(Boolean)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class Punch(Base):
    __tablename__ = "punches"
    __table_args__ = (
        UniqueConstraint("device_serial", "badge_id", "punch_at", "direction", name="uq_punches_dedupe"),
    )

    id = Column(Integer, primary_key=True, index=True)
    device_serial = Column(String(100), nullable=False)
    badge_id = Column(String(100), nullable=False)
    punch_at = Column(DateTime(timezone=True), nullable=False)
    direction = Column(String(3), nullable=False)
    method = Column(String(50))
    employee_id = Column(String(50))
    source = Column(String(20), default="import")
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def coerce_value_for_column(value: Any, column: Column) -> Any:
    """Convert normalized ISO strings to the Python types the column expects."""
    if value is None:
        return None
    if isinstance(column.type, DateTime) and isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(column.type, Date) and isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


def _dialect_insert(engine: Engine):
    if engine.dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif engine.dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ValueError(f"Upserts are not supported for dialect '{engine.dialect.name}'")
    return insert


class SqlRecordStore:
    """
    Record store over SQLAlchemy tables.

    Each row is written in its own transaction with a dialect
    ``INSERT .. ON CONFLICT`` on the table's unique key, so re-running an
    import converges on the same rows. Blocking database calls run in the
    default executor.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._insert = _dialect_insert(engine)

    def _table(self, table_name: str):
        try:
            return Base.metadata.tables[table_name]
        except KeyError:
            raise ValueError(f"Unknown import table '{table_name}'") from None

    def _prepare(self, table, record: Dict[str, Any]) -> Dict[str, Any]:
        return {
            name: coerce_value_for_column(value, table.c[name])
            for name, value in record.items()
            if name in table.c
        }

    def _exists(self, conn, table, row: Dict[str, Any], conflict_key: Sequence[str]) -> bool:
        conditions = [table.c[name] == row.get(name) for name in conflict_key]
        return conn.execute(select(table.c.id).where(*conditions).limit(1)).first() is not None

    def _write(self, table_name: str, record: Dict[str, Any], conflict_key: Sequence[str], update: bool) -> WriteResult:
        table = self._table(table_name)
        row = self._prepare(table, record)

        with self.engine.begin() as conn:
            existed = self._exists(conn, table, row, conflict_key)
            stmt = self._insert(table).values(**row)
            if update:
                update_columns = {
                    name: stmt.excluded[name]
                    for name in row
                    if name not in conflict_key
                }
                update_columns["updated_at"] = _utcnow()
                stmt = stmt.on_conflict_do_update(index_elements=list(conflict_key), set_=update_columns)
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_key))
            result = conn.execute(stmt)

        if existed:
            return WriteResult.UPDATED if update else WriteResult.EXISTING
        if not update and result.rowcount == 0:
            return WriteResult.EXISTING
        return WriteResult.INSERTED

    async def _run(self, func, *args) -> WriteResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def upsert(self, table: str, record: Dict[str, Any], conflict_key: Sequence[str]) -> WriteResult:
        return await self._run(self._write, table, record, conflict_key, True)

    async def insert_if_absent(self, table: str, record: Dict[str, Any], conflict_key: Sequence[str]) -> WriteResult:
        return await self._run(self._write, table, record, conflict_key, False)

    def count(self, table_name: str, where: Optional[Dict[str, Any]] = None) -> int:
        table = self._table(table_name)
        stmt = select(table.c.id)
        for name, value in (where or {}).items():
            stmt = stmt.where(table.c[name] == value)
        with self.engine.connect() as conn:
            return len(conn.execute(stmt).all())
