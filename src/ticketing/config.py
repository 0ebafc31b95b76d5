"""
Configuration lue depuis les variables d'environnement.

Chaque fonction renvoie une valeur par défaut adaptée au
développement local (SQLite, cache en mémoire).
"""

from __future__ import annotations

import os
from typing import Any


def get_database_uri() -> str:
    return os.environ.get("TICKETING_DATABASE_URI", "sqlite:///ticketing.db")


def get_database_settings() -> dict[str, Any]:
    """Arguments de `create_engine` pour la base configurée."""
    uri = get_database_uri()
    settings: dict[str, Any] = {"url": uri}
    if uri.startswith("sqlite"):
        # Les threads de requêtes se partagent le pool ; on attend le verrou plutôt que d'échouer
        settings["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        # Les UPDATE conditionnels relisent la ligne committée : pas d'erreur de sérialisation
        settings["isolation_level"] = "READ COMMITTED"
        settings["pool_pre_ping"] = True
    return settings


def get_cache_backend() -> str:
    """`memory` ou `redis`."""
    return os.environ.get("TICKETING_CACHE_BACKEND", "memory")


def get_redis_settings() -> dict[str, Any]:
    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", 6379))
    return {
        "host": host,
        "port": port,
        "db": int(os.environ.get("REDIS_DB", 0)),
        "socket_connect_timeout": 5,
        "decode_responses": True,
    }


def get_cache_ttl() -> int:
    """Durée de vie des entrées de cache, en secondes (1 heure par défaut)."""
    return int(os.environ.get("TICKETING_CACHE_TTL", 3600))


def get_log_level() -> str:
    return os.environ.get("TICKETING_LOG_LEVEL", "INFO").upper()
