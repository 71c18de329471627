"""Encrypted credential artifacts."""

from asd.vault.codec import SecretCodec
from asd.vault.models import Identity, Target, format_cache_key, parse_cache_key
from asd.vault.passphrase import PassphraseGate
from asd.vault.resolver import CredentialStore

__all__ = [
    "SecretCodec",
    "PassphraseGate",
    "CredentialStore",
    "Identity",
    "Target",
    "format_cache_key",
    "parse_cache_key",
]
