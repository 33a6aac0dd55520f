"""Tests for the Alembic database URL helpers."""

import pytest
from sqlalchemy.engine import make_url

from migrations.env_helpers import get_database_url, libpq_dsn_to_url


class TestLibpqDsnToUrl:
    def test_tcp_host(self):
        url = make_url(libpq_dsn_to_url("host=db.internal port=6543 dbname=fincas user=app password=pw"))
        assert url.drivername == "postgresql+psycopg2"
        assert (url.host, url.port, url.database) == ("db.internal", 6543, "fincas")
        assert (url.username, url.password) == ("app", "pw")

    def test_unix_socket(self):
        url = make_url(libpq_dsn_to_url("host=/cloudsql/proj:region:inst dbname=fincas user=app"))
        assert url.host is None
        assert url.query["host"] == "/cloudsql/proj:region:inst"

    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "s3cret")
        url = make_url(libpq_dsn_to_url("host=localhost dbname=fincas user=app"))
        assert url.password == "s3cret"


class TestGetDatabaseUrl:
    def test_missing(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            get_database_url()

    def test_postgres_scheme_normalized(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://app:pw@localhost:5432/fincas")
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        assert get_database_url() == "postgresql+psycopg2://app:pw@localhost:5432/fincas"

    def test_explicit_driver_kept(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://app@localhost/fincas")
        monkeypatch.setenv("DB_PASSWORD", "s3cret")
        url = make_url(get_database_url())
        assert url.drivername == "postgresql+psycopg2"
        assert url.password == "s3cret"

    def test_dsn_form(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "host=localhost dbname=fincas user=app password=pw")
        assert make_url(get_database_url()).database == "fincas"
