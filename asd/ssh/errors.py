"""
SSH error categorisation for diagnostics.

Turns paramiko/socket exceptions into a short category so the user sees
"dns_failure: ..." instead of a raw traceback.
"""

import socket
from enum import Enum

import paramiko


class SSHErrorCategory(Enum):
    """Categorized SSH error types."""
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_TIMEOUT = "connection_timeout"
    DNS_FAILURE = "dns_failure"
    AUTH_FAILURE = "auth_failure"
    KEY_EXCHANGE_FAILURE = "key_exchange"
    CHANNEL_ERROR = "channel_error"
    PROTOCOL_ERROR = "protocol_error"
    SOCKET_ERROR = "socket_error"
    UNKNOWN = "unknown"


def categorize_ssh_error(exception: Exception) -> SSHErrorCategory:
    """
    Categorize an SSH exception for error reporting.

    Args:
        exception: The caught exception.

    Returns:
        SSHErrorCategory indicating the type of failure.
    """
    if isinstance(exception, paramiko.AuthenticationException):
        return SSHErrorCategory.AUTH_FAILURE

    if isinstance(exception, socket.gaierror):
        return SSHErrorCategory.DNS_FAILURE

    if isinstance(exception, (socket.timeout, TimeoutError)):
        return SSHErrorCategory.CONNECTION_TIMEOUT

    if isinstance(exception, ConnectionRefusedError):
        return SSHErrorCategory.CONNECTION_REFUSED

    error_msg = str(exception).lower()

    if "connection refused" in error_msg or "errno 111" in error_msg:
        return SSHErrorCategory.CONNECTION_REFUSED

    if "timed out" in error_msg:
        return SSHErrorCategory.CONNECTION_TIMEOUT

    if "name or service not known" in error_msg or "getaddrinfo" in error_msg:
        return SSHErrorCategory.DNS_FAILURE

    if any(x in error_msg for x in ["key exchange", "kex", "incompatible", "no matching"]):
        return SSHErrorCategory.KEY_EXCHANGE_FAILURE

    if isinstance(exception, paramiko.ChannelException) or "channel" in error_msg:
        return SSHErrorCategory.CHANNEL_ERROR

    if isinstance(exception, paramiko.SSHException):
        return SSHErrorCategory.PROTOCOL_ERROR

    if isinstance(exception, OSError):
        return SSHErrorCategory.SOCKET_ERROR

    return SSHErrorCategory.UNKNOWN
