"""
asd - SSH with encrypted, cached passwords.

Usage:
    asd config passphrase
    asd config credentials admin
    asd admin@10.0.0.1
"""

__version__ = "0.1.0"

from asd.core.config import Config, ConfigPaths
from asd.core.connect import ConnectOptions, ConnectResult, connect
from asd.exceptions import (
    AsdError,
    AuthFailedError,
    CipherFailedError,
    ConfigError,
    NotCachedError,
    NotFoundError,
    SessionError,
)
from asd.ssh.session import Session, SessionMultiplexer
from asd.vault.codec import SecretCodec
from asd.vault.models import Identity, Target
from asd.vault.passphrase import PassphraseGate
from asd.vault.resolver import CredentialStore

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "ConfigPaths",
    # Vault
    "SecretCodec",
    "PassphraseGate",
    "CredentialStore",
    "Identity",
    "Target",
    # SSH
    "Session",
    "SessionMultiplexer",
    # Connect
    "ConnectOptions",
    "ConnectResult",
    "connect",
    # Errors
    "AsdError",
    "AuthFailedError",
    "CipherFailedError",
    "ConfigError",
    "NotCachedError",
    "NotFoundError",
    "SessionError",
]
