"""
Credential Store - find the encrypted artifact that answers
"what is the password for user@host:port".

This module handles:
- Locating session-cache artifacts (``state/{user}@{remote}:{port}``),
  exact match first, then a glob over the parts the caller left open
- Expiring session-cache artifacts older than the configured TTL
- Falling back to persistent per-user credentials (``credentials/{user}``)
  and finally to an interactive prompt
- Recovering the identity actually used from a loosely matched cache entry
"""

import getpass
import glob
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

from asd.exceptions import NotCachedError
from asd.vault.codec import SecretCodec, encode_secret
from asd.vault.models import Identity, Target, check_path_component, format_cache_key, parse_cache_key


logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Resolves passwords from session-cache and persistent credential artifacts.

    Usage:
        store = CredentialStore(codec, paths.state, paths.credentials_dir, ttl=43200)
        try:
            cache = store.resolve_cache(target, default_identity)
        except NotCachedError:
            cache = None
        password = store.resolve_password(passphrase, target, default_identity, cache)
        identity = store.resolve_identity(target, default_identity, cache)
    """

    def __init__(
        self,
        codec: SecretCodec,
        state_dir: Path,
        credentials_dir: Path,
        ttl: Optional[float] = None,
        prompt: Callable[[str], str] = getpass.getpass,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            codec: Codec used for every decrypt/encrypt.
            state_dir: Directory holding session-cache artifacts.
            credentials_dir: Directory holding persistent credentials.
            ttl: Session-cache lifetime in seconds. None or 0 disables expiry.
            prompt: No-echo prompt used when nothing is stored.
            clock: Time source (seconds since epoch).
        """
        self.codec = codec
        self.state_dir = Path(state_dir)
        self.credentials_dir = Path(credentials_dir)
        self.ttl = ttl
        self._prompt = prompt
        self._clock = clock

    # ------------------------------------------------------------------
    # Paths

    def cache_path(self, remote: str, identity: Identity) -> Path:
        """Exact session-cache path for ``identity`` on ``remote``."""
        check_path_component(remote, "remote")
        return self.state_dir / format_cache_key(identity.user, remote, identity.port)

    def credential_path(self, user: str) -> Path:
        """Persistent credential path for ``user``."""
        check_path_component(user, "user")
        return self.credentials_dir / user

    def cached_artifacts(self) -> List[Path]:
        """All session-cache artifacts currently on disk."""
        if not self.state_dir.is_dir():
            return []
        return sorted(p for p in self.state_dir.iterdir() if p.is_file() and _is_cache_key(p.name))

    def credential_artifacts(self) -> List[Path]:
        """All persistent credential artifacts currently on disk."""
        if not self.credentials_dir.is_dir():
            return []
        return sorted(p for p in self.credentials_dir.iterdir() if p.is_file() and not p.name.startswith("."))

    # ------------------------------------------------------------------
    # Expiry

    def _expired(self, path: Path) -> bool:
        """Delete and report ``path`` if it outlived the TTL."""
        if not self.ttl:
            return False
        try:
            age = self._clock() - path.stat().st_mtime
        except FileNotFoundError:
            return True
        if age <= self.ttl:
            return False

        logger.info(f"Cached password {path.name} expired ({age:.0f}s old), removing")
        path.unlink(missing_ok=True)
        return True

    def _mtime(self, path: Path) -> float:
        try:
            return path.stat().st_mtime
        except FileNotFoundError:
            return 0.0

    # ------------------------------------------------------------------
    # Resolution

    def resolve_cache(self, target: Target, default: Identity) -> Path:
        """
        Find the session-cache artifact for ``target``.

        The exact ``{user}@{remote}:{port}`` file wins. Otherwise user and/or
        port not given explicitly in ``target`` become wildcards; matches for
        the effective user are preferred, then the most recently written.

        Raises:
            NotCachedError: If nothing (unexpired) matches.
        """
        identity = target.identity(default)

        exact = self.cache_path(target.remote, identity)
        if exact.is_file() and not self._expired(exact):
            logger.debug(f"Exact cache match: {exact.name}")
            return exact

        user = glob.escape(target.user) if target.user else "*"
        port = str(target.port) if target.port is not None else "*"
        pattern = format_cache_key(user, glob.escape(target.remote), port)

        candidates = [
            p for p in self.state_dir.glob(pattern)
            if p.is_file() and _is_cache_key(p.name) and not self._expired(p)
        ]
        if not candidates:
            logger.debug(f"No cache match for pattern {pattern}")
            raise NotCachedError(target.remote)

        same_user = f"{identity.user}@"
        candidates.sort(
            key=lambda p: (p.name.startswith(same_user), self._mtime(p), p.name),
            reverse=True,
        )
        chosen = candidates[0]
        logger.debug(f"Loose cache match for {pattern}: {chosen.name}")
        return chosen

    def resolve_password(
        self,
        passphrase: str,
        target: Target,
        default: Identity,
        cache: Optional[Path],
        cache_only: bool = False,
        ask: bool = False,
    ) -> str:
        """
        Produce the login password for ``target``.

        Order: ``ask`` forces a prompt; a resolved cache artifact; in
        cache-only mode nothing else; the persistent credential for the
        effective user; an interactive prompt.

        Raises:
            NotCachedError: If ``cache_only`` and no cache artifact was found.
            CipherFailedError: If an artifact cannot be decrypted.
        """
        identity = self.resolve_identity(target, default, cache)

        if ask:
            return self.prompt_password(target.remote, identity)

        if cache is not None:
            logger.debug(f"Using cached password {cache.name}")
            return self.codec.decrypt(passphrase, cache)

        if cache_only:
            raise NotCachedError(target.remote)

        credential = self.credential_path(identity.user)
        if credential.is_file():
            logger.debug(f"Using stored credentials for {identity.user}")
            return self.codec.decrypt(passphrase, credential)

        return self.prompt_password(target.remote, identity)

    def resolve_identity(self, target: Target, default: Identity, cache: Optional[Path]) -> Identity:
        """Identity encoded in ``cache`` if one was used, else override-or-default."""
        if cache is not None:
            user, _remote, port = parse_cache_key(Path(cache).name)
            return Identity(user=user, port=port)
        return target.identity(default)

    def prompt_password(self, remote: str, identity: Identity) -> str:
        return self._prompt(f"{identity.user}@{remote}'s password: ")

    def store_cache(self, passphrase: str, password: str, remote: str, identity: Identity) -> Path:
        """Encrypt ``password`` into the exact session-cache path, replacing any old one."""
        path = self.cache_path(remote, identity)
        self.codec.encrypt(passphrase, encode_secret(password), path)
        logger.debug(f"Cached password for {path.name}")
        return path


def _is_cache_key(name: str) -> bool:
    try:
        parse_cache_key(name)
    except ValueError:
        return False
    return True
