"""Message framing for the VNDB line protocol.

Frame layout::

    +----------------------------+------------+
    | Message (UTF-8 text)       | Terminator |
    | <verb>[ <json-body>]       | 0x04       |
    +----------------------------+------------+

- Requests and responses use the same framing.
- The terminator byte never appears inside a message.
- Only one request is outstanding at a time, so a response always ends
  exactly at the terminator of the chunk that completes it.
"""

from __future__ import annotations

TERMINATOR = "\x04"
ENCODING = "utf-8"

# The terminator is ASCII, so it never occurs inside a multi-byte UTF-8
# sequence and can be matched on raw bytes.
_TERMINATOR_BYTES = TERMINATOR.encode(ENCODING)


def encode_message(message: str) -> bytes:
    """Append the terminator to *message* and encode it for the wire.

    Raises:
        ValueError: If *message* already contains the terminator.
    """
    if TERMINATOR in message:
        raise ValueError("Message must not contain the terminator byte")
    return (message + TERMINATOR).encode(ENCODING)


class MessageBuffer:
    """Accumulates received chunks until one complete message is seen.

    Chunks are kept as bytes and only decoded once the terminator has
    arrived, so a multi-byte character split across two reads is
    reassembled correctly and a bad byte never cuts a frame short.
    """

    def __init__(self) -> None:
        self._data = bytearray()

    @property
    def pending(self) -> str:
        """Text received so far for the current message."""
        return self._data.decode(ENCODING, errors="replace")

    def reset(self) -> None:
        self._data.clear()

    def feed(self, chunk: bytes) -> str | None:
        """Add *chunk* to the buffer.

        Returns:
            The complete message with its terminator stripped, or ``None``
            if the terminator has not arrived yet. The buffer is reset
            once the terminator has been seen.

        Raises:
            UnicodeDecodeError: If the complete message is not valid UTF-8.
                The buffer is reset first, so the next message starts clean.
        """
        self._data += chunk
        if not self._data.endswith(_TERMINATOR_BYTES):
            return None
        frame = bytes(self._data[: -len(_TERMINATOR_BYTES)])
        self.reset()
        return frame.decode(ENCODING)
