"""Redis client service."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple

import redis
from redis.backoff import ConstantBackoff
from redis.retry import Retry

from service_adapters.config import as_bool

from .base import BaseService

LOGGER = logging.getLogger(__name__)

PoolKey = Tuple[str, int, int, Optional[str], Optional[str], float, Optional[int]]

_PERSISTENT_POOLS: MutableMapping[PoolKey, redis.ConnectionPool] = {}


@dataclass
class RedisConnectionParams:
    """Connection parameters read by name from a service configuration."""

    host: str = "localhost"
    port: int = 6379
    timeout: float = 0
    persistent_id: Optional[str] = None
    retry_interval: Optional[int] = None
    persistent: bool = False
    password: Optional[str] = None
    database: int = 0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RedisConnectionParams":
        defaults = cls()

        def value(key: str) -> Any:
            raw = config.get(key)
            return None if raw is None or raw == "" else raw

        host = value("host")
        port = value("port")
        timeout = value("timeout")
        persistent_id = value("persistent_id")
        retry_interval = value("retry_interval")
        persistent = value("persistent")
        password = value("password")
        database = value("database")

        return cls(
            host=str(host) if host is not None else defaults.host,
            port=int(port) if port is not None else defaults.port,
            timeout=float(timeout) if timeout is not None else defaults.timeout,
            persistent_id=str(persistent_id) if persistent_id is not None else None,
            retry_interval=int(retry_interval) if retry_interval is not None else None,
            persistent=as_bool(persistent) if persistent is not None else defaults.persistent,
            password=str(password) if password is not None else None,
            database=int(database) if database is not None else defaults.database,
        )

    def connection_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments understood by redis-py connections."""

        timeout = self.timeout or None
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "socket_timeout": timeout,
            "socket_connect_timeout": timeout,
        }
        if self.password:
            kwargs["password"] = self.password
        if self.database:
            kwargs["db"] = self.database
        if self.retry_interval:
            kwargs["retry"] = Retry(ConstantBackoff(self.retry_interval / 1000.0), 1)
        return kwargs

    @property
    def pool_key(self) -> PoolKey:
        """Every setting a pooled connection is opened with, plus the persistent id."""

        return (
            self.host,
            self.port,
            self.database,
            self.persistent_id,
            self.password,
            self.timeout,
            self.retry_interval,
        )


class RedisService(BaseService):
    """Builds a connected redis-py client from a service configuration.

    ``REDIS_PORT`` in the ``scheme://host:port`` form (as exported by linked
    containers) replaces the default host and port.
    """

    name = "redis"
    default_config = {"host": "localhost", "port": 6379}
    required_module = "redis"

    ENV_VARIABLE = "REDIS_PORT"
    URL_PATTERN = re.compile(r"^(.*?)://(.*?):(.*?)$")

    @classmethod
    def get_default_config(cls, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        config = super().get_default_config(environ)
        environ = os.environ if environ is None else environ

        url = environ.get(cls.ENV_VARIABLE)
        match = cls.URL_PATTERN.match(url) if url else None
        if match:
            config["host"] = match.group(2)
            config["port"] = match.group(3)

        return config

    def build(self, config: Mapping[str, Any]) -> redis.Redis:
        params = RedisConnectionParams.from_config(config)

        if params.persistent:
            client = redis.Redis(connection_pool=self._persistent_pool(params))
        else:
            client = redis.Redis(**params.connection_kwargs())

        LOGGER.debug(
            "Connecting to redis at %s:%s (persistent=%s)",
            params.host,
            params.port,
            params.persistent,
        )
        client.ping()
        return client

    @staticmethod
    def _persistent_pool(params: RedisConnectionParams) -> redis.ConnectionPool:
        pool = _PERSISTENT_POOLS.get(params.pool_key)
        if pool is None:
            pool = redis.ConnectionPool(**params.connection_kwargs())
            _PERSISTENT_POOLS[params.pool_key] = pool
        return pool
