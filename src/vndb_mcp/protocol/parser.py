"""Response parsing for server messages."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..errors import ResponseDecodeError, VNDBError

ERROR_TYPE = "error"


@dataclass
class ParsedResponse:
    """One decoded server response.

    ``data`` is the bare type string for bodiless acknowledgments
    (``ok``), otherwise the decoded JSON body.
    """

    type: str
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


def parse_response(raw: str) -> ParsedResponse:
    """Parse one complete message (terminator already stripped).

    The message has the form ``<type> <payload>``. When the payload is
    the type repeated, or missing altogether as in a bare ``ok``, the
    response carries no body.

    Raises:
        VNDBError: If the response type is ``error``.
        ResponseDecodeError: If the payload is not valid JSON.
    """
    type_, sep, payload = raw.partition(" ")
    if not sep or payload == type_:
        data: Any = type_
    else:
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise ResponseDecodeError(raw, str(e)) from e

    if type_ == ERROR_TYPE:
        raise VNDBError.from_payload(data)
    return ParsedResponse(type=type_, data=data)
