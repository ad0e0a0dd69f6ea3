"""
Pytest configuration and fixtures for the payroll import tests.

Database-backed tests run against an in-memory SQLite engine; the API app
skips its startup table bootstrap so no external database is needed.
"""

import os

os.environ.setdefault("SKIP_DB_INIT", "1")

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from payroll_import.db.models import create_tables
from payroll_import.domain.imports.importer import InMemoryRecordStore

# Reference date for age and future-date rules
TODAY = date(2024, 6, 1)

EMPLOYEE_HEADER = (
    "Associate ID,First Name,Last Name,Tax ID,Date of Birth,Hire Date,"
    "Province/Territory,Rate Type,Rate,Email"
)

# 10 valid rows, one missing its hire date (line 12), one repeating A002 (line 13)
EMPLOYEE_ROWS = [
    'A001,Jane,Doe,046 454 286,15/03/1985,01/02/2020,Ontario,Hourly,25.50,jane.doe@example.com',
    'A002,John,Smith,,1990-07-21,2019-11-04,ON,Hourly,22.00,john.smith@example.com',
    'A003,Marie,Tremblay,,12/12/1978,2015-06-30,Québec,Salaried,950,marie@example.com',
    'A004,Li,Wei,,1992-01-05,2021-01-11,BC,Hourly,30,li.wei@example.com',
    'A005,Sam,Patel,,1988-09-09,2018-03-15,Alberta,Hourly,"$1,000.00",sam@example.com',
    'A006,Ana,Silva,,1995-04-18,2022-08-01,MB,Hourly,19.75,ana@example.com',
    'A007,Omar,Haddad,,1983-02-28,2012-10-10,NS,Salaried,880,omar@example.com',
    'A008,Grace,Lee,,1999-12-31,2023-01-03,sk,Hourly,18,grace@example.com',
    'A009,Tom,Brown,,1975-05-05,2005-05-05,Nfld,Hourly,21,tom@example.com',
    'A010,Eve,Martin,,1980-08-08,2010-01-04,PEI,Hourly,20,eve@example.com',
    'A011,Zoe,King,,1991-03-03,,ON,Hourly,20,zoe@example.com',
    'a002,Johnny,Smith,,1990-07-21,2019-11-04,ON,Hourly,22,js2@example.com',
]


def build_csv(header: str, rows) -> bytes:
    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


@pytest.fixture
def employee_csv() -> bytes:
    return build_csv(EMPLOYEE_HEADER, EMPLOYEE_ROWS)


@pytest.fixture
def sqlite_engine():
    """Fresh in-memory SQLite database with the import tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()
