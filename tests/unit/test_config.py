"""
Tests de la configuration lue depuis l'environnement.
"""

from ticketing import config


def test_sqlite_par_défaut(monkeypatch):
    monkeypatch.delenv("TICKETING_DATABASE_URI", raising=False)

    settings = config.get_database_settings()

    assert settings["url"] == "sqlite:///ticketing.db"
    assert settings["connect_args"]["check_same_thread"] is False
    assert "isolation_level" not in settings


def test_postgres_en_read_committed(monkeypatch):
    monkeypatch.setenv("TICKETING_DATABASE_URI", "postgresql://ticketing@localhost/ticketing")

    settings = config.get_database_settings()

    assert settings["isolation_level"] == "READ COMMITTED"
    assert settings["pool_pre_ping"] is True
    assert "connect_args" not in settings


def test_ttl_et_niveau_de_log(monkeypatch):
    monkeypatch.setenv("TICKETING_CACHE_TTL", "60")
    monkeypatch.setenv("TICKETING_LOG_LEVEL", "debug")

    assert config.get_cache_ttl() == 60
    assert config.get_log_level() == "DEBUG"
