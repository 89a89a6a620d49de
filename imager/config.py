"""Service settings, read from environment variables.

- PGHOST, PGPORT, PGUSER, PGPASSWORD, PGDBNAME for PostgreSQL
- BUCKETNAME, S3_ENDPOINT_URL, AWS_REGION for blob storage (credentials come
  from the usual AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY)
- HTTP_HOST, HTTP_PORT, MAX_UPLOAD_BYTES for the HTTP server
- DOWNLOAD_TIMEOUT, DB_POOL_MIN, DB_POOL_MAX, LOG_LEVEL
"""

import os
from dataclasses import dataclass
from typing import Optional

from psycopg.conninfo import make_conninfo


@dataclass(frozen=True)
class Settings:
    pg_host: str = "localhost"
    pg_port: int = 5432
    pg_user: str = "postgres"
    pg_password: str = ""
    pg_dbname: str = "imager"
    db_pool_min: int = 1
    db_pool_max: int = 10

    bucket_name: str = "try-imager"
    s3_endpoint_url: Optional[str] = None
    aws_region: str = "us-east-1"

    http_host: str = "0.0.0.0"
    http_port: int = 8080
    max_upload_bytes: int = 32 * 1024 * 1024
    download_timeout: float = 60.0

    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        # Empty values are left out; anything else is quoted by libpq rules.
        return make_conninfo(
            host=self.pg_host,
            port=self.pg_port,
            user=self.pg_user or None,
            password=self.pg_password or None,
            dbname=self.pg_dbname,
            sslmode="disable",
        )


def load_settings() -> Settings:
    """Build Settings from the environment, falling back to defaults."""
    return Settings(
        pg_host=os.environ.get("PGHOST", "localhost"),
        pg_port=int(os.environ.get("PGPORT", "5432")),
        pg_user=os.environ.get("PGUSER", "postgres"),
        pg_password=os.environ.get("PGPASSWORD", ""),
        pg_dbname=os.environ.get("PGDBNAME", "imager"),
        db_pool_min=int(os.environ.get("DB_POOL_MIN", "1")),
        db_pool_max=int(os.environ.get("DB_POOL_MAX", "10")),
        bucket_name=os.environ.get("BUCKETNAME") or "try-imager",
        s3_endpoint_url=os.environ.get("S3_ENDPOINT_URL") or None,
        aws_region=os.environ.get("AWS_REGION", "us-east-1"),
        http_host=os.environ.get("HTTP_HOST", "0.0.0.0"),
        http_port=int(os.environ.get("HTTP_PORT", "8080")),
        max_upload_bytes=int(os.environ.get("MAX_UPLOAD_BYTES", str(32 * 1024 * 1024))),
        download_timeout=float(os.environ.get("DOWNLOAD_TIMEOUT", "60")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
