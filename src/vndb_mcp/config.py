"""Connection and login settings."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping

DEFAULT_HOST = "api.vndb.org"
DEFAULT_PORT = 19535  # TLS port
PROTOCOL_VERSION = 1
CLIENT_NAME = "vndb-mcp"
CLIENT_VERSION = "0.1.0"


@dataclass(frozen=True)
class ClientConfig:
    """Settings accepted by :meth:`VNDBClient.connect`.

    ``host`` and ``port`` select the server; ``protocol``, ``client`` and
    ``clientver`` are sent in the login body.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    protocol: int = PROTOCOL_VERSION
    client: str = CLIENT_NAME
    clientver: str = CLIENT_VERSION

    def merged(self, overrides: Mapping[str, Any] | None = None) -> ClientConfig:
        """Return a copy with every non-``None`` value of *overrides* applied.

        Raises:
            ValueError: If *overrides* names an unknown setting.
        """
        if not overrides:
            return self
        valid = [f.name for f in fields(self)]
        unknown = [key for key in overrides if key not in valid]
        if unknown:
            raise ValueError(f"Unknown setting(s) {unknown}. Valid: {valid}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config from ``VNDB_*`` environment variables."""
        env = os.environ if environ is None else environ
        port = env.get("VNDB_PORT")
        return cls().merged({
            "host": env.get("VNDB_HOST"),
            "port": int(port) if port else None,
            "client": env.get("VNDB_CLIENT"),
            "clientver": env.get("VNDB_CLIENTVER"),
        })


def credentials_from_env(
    environ: Mapping[str, str] | None = None,
) -> tuple[str | None, str | None]:
    """Return ``(username, password)`` from ``VNDB_USERNAME``/``VNDB_PASSWORD``."""
    env = os.environ if environ is None else environ
    return env.get("VNDB_USERNAME") or None, env.get("VNDB_PASSWORD") or None
