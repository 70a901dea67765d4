"""Transport layer: the TLS socket the client talks through."""

from .tls_connection import TLSConnection, Transport
