"""Command verbs and builders for request messages.

Builders only assemble the message text; framing and transmission are
handled by :class:`vndb_mcp.client.VNDBClient`.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Iterable, Mapping

from ..config import ClientConfig


class GetType(str, Enum):
    """Entry types accepted by the ``get`` command."""

    VN = "vn"
    RELEASE = "release"
    PRODUCER = "producer"
    CHARACTER = "character"
    USER = "user"
    VOTELIST = "votelist"
    VNLIST = "vnlist"
    WISHLIST = "wishlist"


# Filters used when the caller gives none. User lists default to the
# logged-in user (uid 0).
DEFAULT_FILTERS: dict[GetType, str] = {
    GetType.VN: "(id >= 1)",
    GetType.RELEASE: "(id >= 1)",
    GetType.PRODUCER: "(id >= 1)",
    GetType.CHARACTER: "(id >= 1)",
    GetType.USER: "(id = 0)",
    GetType.VOTELIST: "(uid = 0)",
    GetType.VNLIST: "(uid = 0)",
    GetType.WISHLIST: "(uid = 0)",
}

DEFAULT_FLAGS = ("basic",)


def _dumps(body: Mapping[str, Any]) -> str:
    return json.dumps(body, separators=(",", ":"))


def build_login(
    username: str | None = None,
    password: str | None = None,
    config: ClientConfig | None = None,
) -> str:
    """Build the ``login`` message.

    ``username`` and ``password`` are left out of the body entirely when
    not given.
    """
    config = config or ClientConfig()
    body: dict[str, Any] = {
        "protocol": config.protocol,
        "client": config.client,
        "clientver": config.clientver,
    }
    if username:
        body["username"] = username
    if password:
        body["password"] = password
    return f"login {_dumps(body)}"


def build_dbstats() -> str:
    """Build a ``dbstats`` message."""
    return "dbstats"


def build_get(
    type: GetType | str,
    flags: Iterable[str] | str | None = None,
    filters: str | None = None,
    options: Mapping[str, Any] | None = None,
) -> str:
    """Build a ``get`` message.

    Args:
        type: Entry type (vn, release, producer, character, user,
              votelist, vnlist, wishlist).
        flags: Flag names, e.g. ``["basic", "details"]``. Defaults to ``basic``.
        filters: Filter expression, e.g. ``"(id = 17)"``. Defaults to a
                 filter matching every entry (or the logged-in user for
                 user lists).
        options: Optional ``page``/``results``/``sort``/``reverse`` settings.
    """
    try:
        get_type = GetType(type)
    except ValueError:
        raise ValueError(
            f"Unknown get type '{type}'. Valid: {[t.value for t in GetType]}"
        ) from None

    if flags is None:
        flags = DEFAULT_FLAGS
    elif isinstance(flags, str):
        flags = [flags]
    flag_list = [f.strip() for f in flags if f.strip()]
    if not flag_list:
        raise ValueError("At least one flag is required")

    message = f"get {get_type.value} {','.join(flag_list)} "
    message += filters or DEFAULT_FILTERS[get_type]
    if options:
        message += f" {_dumps(options)}"
    return message
