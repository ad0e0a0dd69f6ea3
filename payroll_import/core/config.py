from typing import List

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./payroll_import.db"
    debug: bool = True
    log_level: str = "INFO"

    # Parser limits
    upload_max_file_size_mb: int = 20
    allowed_extensions: List[str] = [".csv", ".xlsx", ".xls"]

    # Ambiguous D/M vs M/D dates resolve day-first (Canadian/ISO convention)
    date_default_dayfirst: bool = True

    # Validation thresholds
    rate_warning_threshold: float = 1000.0
    minimum_employee_age: int = 14
    sin_checksum_severity: str = "warning"  # "warning" or "error"

    # Batch importer
    import_batch_size: int = 10

    # Interactive sessions held by the API (in production, use Redis or database)
    session_ttl_seconds: int = 1800

    default_company_code: str = "72R"

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
