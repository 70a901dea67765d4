"""Asyncio client and MCP server for the VNDB TCP API."""

from .client import VNDBClient
from .errors import (
    AlreadyConnectedError,
    ResponseDecodeError,
    TransportError,
    UsageError,
    VNDBError,
)

__version__ = "0.1.0"
