"""
Adapter pour le cache des lectures.

Le cache est read-through / write-invalidate : les lectures le
remplissent, les écritures committées vident la famille d'entités
concernée par préfixe ("booking:", "event:").

Deux backends interchangeables : un dictionnaire en mémoire (tests,
développement) et Redis. Le CacheCoordinator les enveloppe et
dégrade toute panne en miss ou en no-op : un cache indisponible rend
les réponses moins rapides, jamais fausses ni en erreur.
"""

from __future__ import annotations

import abc
import json
import logging
import threading
import time
from typing import Any, Callable, Optional

import redis

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Le backend de cache est injoignable ou a refusé l'opération."""
    pass


class AbstractCacheBackend(abc.ABC):
    """Interface abstraite d'un backend clé/valeur avec TTL."""

    @abc.abstractmethod
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete_by_prefix(self, prefix: str) -> int:
        raise NotImplementedError


class InMemoryCacheBackend(AbstractCacheBackend):
    """
    Backend en mémoire, protégé par un verrou.

    Les entrées expirées ne sont supprimées qu'à la lecture
    (expiration paresseuse). L'horloge est injectable pour les tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete_by_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisCacheBackend(AbstractCacheBackend):
    """
    Backend Redis.

    L'invalidation par préfixe parcourt les clés avec SCAN (non
    bloquant côté serveur) puis les supprime par paquets.
    """

    def __init__(self, client: redis.Redis, scan_count: int = 500):
        self.client = client
        self.scan_count = scan_count

    @classmethod
    def from_settings(cls, **settings: Any) -> RedisCacheBackend:
        return cls(redis.Redis(**settings))

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(key)
        except redis.RedisError as e:
            raise CacheError(str(e)) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as e:
            raise CacheError(str(e)) from e

    def delete_by_prefix(self, prefix: str) -> int:
        deleted = 0
        batch: list[str] = []
        try:
            for key in self.client.scan_iter(match=f"{prefix}*", count=self.scan_count):
                batch.append(key)
                if len(batch) >= self.scan_count:
                    deleted += self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += self.client.delete(*batch)
        except redis.RedisError as e:
            raise CacheError(str(e)) from e
        return deleted


def serialize_params(params: dict[str, Any]) -> str:
    """JSON compact, dans l'ordre d'insertion des clés : {"page":1,"limit":10}."""
    return json.dumps(params, separators=(",", ":"), default=str)


class CacheCoordinator:
    """
    Point d'accès unique au cache pour la service layer.

    Les valeurs sont sérialisées en JSON. Les CacheError des backends
    ne remontent jamais : un get en échec est un miss, un set ou une
    invalidation en échec est loggé.
    """

    def __init__(self, backend: AbstractCacheBackend, default_ttl: int = 3600):
        self.backend = backend
        self.default_ttl = default_ttl

    @staticmethod
    def make_key(family: str, *parts: object) -> str:
        return ":".join([family, *(str(p) for p in parts)])

    def get(self, key: str) -> Any:
        """Retourne la valeur désérialisée, ou None en cas de miss."""
        try:
            raw = self.backend.get(key)
        except CacheError:
            logger.warning("Cache indisponible en lecture (%s), traité comme un miss", key)
            return None
        if raw is None:
            logger.debug("Cache miss %s", key)
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Entrée de cache illisible ignorée : %s", key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        try:
            self.backend.set(key, json.dumps(value, default=str), ttl)
        except CacheError:
            logger.warning("Échec d'écriture dans le cache pour %s", key, exc_info=True)

    def delete_by_prefix(self, prefix: str) -> None:
        try:
            deleted = self.backend.delete_by_prefix(prefix)
        except CacheError:
            logger.warning("Échec d'invalidation du préfixe %s", prefix, exc_info=True)
            return
        logger.debug("Invalidation de %s : %d entrée(s)", prefix, deleted)
