"""
Credential data models.

Dataclasses describing who we log in as and where, plus the single pair of
functions that encode an identity into a session-cache filename and decode
it back.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


def check_path_component(value: str, what: str) -> str:
    """
    Reject values that cannot be used verbatim as a single file name.

    Users and remotes become artifact file names, so a separator or a
    relative component would place the artifact outside its directory.

    Raises:
        ValueError: If ``value`` is empty, ``.``, ``..`` or contains ``/`` or NUL.
    """
    if value in ("", ".", "..") or "/" in value or "\0" in value:
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


@dataclass(frozen=True)
class Identity:
    """Login user and port used to address a remote."""

    user: str
    port: int = 22

    def __post_init__(self):
        if not self.user:
            raise ValueError("Identity user must not be empty")
        check_path_component(self.user, "user")
        if not 1 <= int(self.port) <= 65535:
            raise ValueError(f"Port out of range: {self.port}")


@dataclass(frozen=True)
class Target:
    """
    A remote as given on the command line: ``[user@]host[:port]``.

    ``user`` and ``port`` are only set when the caller spelled them out;
    they act as the identity override during credential resolution.
    """

    remote: str
    user: Optional[str] = None
    port: Optional[int] = None

    def __post_init__(self):
        check_path_component(self.remote, "remote")
        if self.user is not None:
            check_path_component(self.user, "user")

    @classmethod
    def parse(cls, text: str) -> "Target":
        """Parse ``[user@]host[:port]`` (IPv6 hosts may be bracketed)."""
        text = text.strip()
        user = None
        if "@" in text:
            user, _, text = text.rpartition("@")
            user = user or None

        port = None
        if text.startswith("["):
            host, _, rest = text[1:].partition("]")
            if rest.startswith(":"):
                port = _parse_port(rest[1:])
        elif text.count(":") == 1:
            host, _, port_text = text.partition(":")
            port = _parse_port(port_text)
        else:
            host = text

        if not host:
            raise ValueError(f"Missing host in remote: {text!r}")
        return cls(remote=host, user=user, port=port)

    def identity(self, default: Identity) -> Identity:
        """Effective identity: explicit parts win over the default."""
        return Identity(
            user=self.user or default.user,
            port=self.port if self.port is not None else default.port,
        )

    def __str__(self) -> str:
        host = f"[{self.remote}]" if ":" in self.remote else self.remote
        text = f"{self.user}@{host}" if self.user else host
        return f"{text}:{self.port}" if self.port is not None else text


def _parse_port(text: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise ValueError(f"Invalid port: {text!r}")
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    return port


def format_cache_key(user: str, remote: str, port) -> str:
    """Session-cache filename for a (user, remote, port) triple."""
    return f"{user}@{remote}:{port}"


def parse_cache_key(name: str) -> Tuple[str, str, int]:
    """
    Inverse of :func:`format_cache_key`.

    The user is everything before the last ``@``, the port everything after
    the last ``:``.

    Raises:
        ValueError: If ``name`` is not a valid cache key.
    """
    user, at, rest = name.rpartition("@")
    remote, colon, port = rest.rpartition(":")
    if not (at and colon and user and remote):
        raise ValueError(f"Not a cache key: {name!r}")
    return user, remote, _parse_port(port)
