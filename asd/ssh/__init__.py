"""SSH session - password authentication and terminal relay."""

from asd.ssh.session import Session, SessionMultiplexer, SessionOptions

__all__ = [
    "Session",
    "SessionMultiplexer",
    "SessionOptions",
]
