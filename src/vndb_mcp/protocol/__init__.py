"""Protocol layer: message framing, command builders, and response parsing."""

from .framing import TERMINATOR, MessageBuffer, encode_message
from .parser import ParsedResponse, parse_response
from .commands import GetType, build_dbstats, build_get, build_login
