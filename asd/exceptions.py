"""
Error taxonomy shared by the vault, SSH and CLI layers.

Every component raises one of these (or lets an ``OSError`` propagate for
filesystem and process-spawn failures). Only the CLI entry point turns them
into a log line and a non-zero exit code.
"""


class AsdError(Exception):
    """Base class for all asd errors."""


class ConfigError(AsdError):
    """Configuration file could not be read or contains invalid values."""


class NotFoundError(AsdError):
    """An encrypted artifact does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"file {str(path)!r} not found")


class CipherFailedError(AsdError):
    """The cipher tool exited non-zero (wrong passphrase, corrupt file...)."""

    def __init__(self, message: str, returncode: int = 1):
        self.message = message
        self.returncode = returncode
        super().__init__(message)


class EditorError(AsdError):
    """The external editor could not be run or exited non-zero."""


class NotCachedError(AsdError):
    """Cache-only mode was requested but no session-cache artifact matched."""

    def __init__(self, remote: str):
        self.remote = remote
        super().__init__(f"no cached password for {remote}")


class SessionError(AsdError):
    """The SSH transport or channel failed."""


class AuthFailedError(SessionError):
    """The remote rejected the supplied credentials."""

    def __init__(self, user: str, remote: str, port: int):
        self.user = user
        self.remote = remote
        self.port = port
        super().__init__(f"Authentication failed for {user}@{remote}:{port}")
