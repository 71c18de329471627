"""
Connect - resolve credentials for a remote and open an interactive session.

Path: asd/core/connect.py

States: Resolving -> CacheWrite -> Deciding -> Connecting -> Done, with any
propagated error ending in Failed.

Usage:
    result = connect(target, ConnectOptions(), config, store, passphrase)
    sys.exit(result.exit_code)
"""

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from asd.core.config import Config
from asd.exceptions import AuthFailedError, NotCachedError
from asd.ssh.session import SessionMultiplexer
from asd.vault.models import Identity, Target
from asd.vault.resolver import CredentialStore


logger = logging.getLogger(__name__)


class ConnectState(Enum):
    RESOLVING = "resolving"
    CACHE_WRITE = "cache_write"
    DECIDING = "deciding"
    CONNECTING = "connecting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ConnectOptions:
    """Flags of the ``ssh`` subcommand."""
    ask_pass: bool = False        # Prompt for the password even if one is stored
    cache_only: bool = False      # Never prompt; fail if nothing is cached
    force: bool = False           # Ignore any cached password
    dry_run: bool = False         # Authenticate only, no interactive session
    print_password: bool = False  # Print the password, never touch the network
    command: Optional[str] = None

    def __post_init__(self):
        if self.cache_only and (self.ask_pass or self.force):
            raise ValueError("cache_only cannot be combined with ask_pass or force")


@dataclass
class ConnectResult:
    """Outcome of a connect run."""
    state: ConnectState
    identity: Optional[Identity] = None
    remote: Optional[str] = None
    cache_path: Optional[Path] = None
    cache_written: bool = False
    exit_code: int = 0


class Connector:
    """Drives one connect run through its states."""

    def __init__(
        self,
        store: CredentialStore,
        multiplexer: Optional[SessionMultiplexer] = None,
        output=None,
    ):
        self.store = store
        self.multiplexer = multiplexer or SessionMultiplexer()
        self.output = output or sys.stdout
        self.state = ConnectState.RESOLVING

    def _transition(self, state: ConnectState):
        logger.debug(f"connect: {self.state.value} -> {state.value}")
        self.state = state

    def run(self, target: Target, options: ConnectOptions, default: Identity, passphrase: str) -> ConnectResult:
        try:
            return self._run(target, options, default, passphrase)
        except BaseException:
            self._transition(ConnectState.FAILED)
            raise

    def _run(self, target: Target, options: ConnectOptions, default: Identity, passphrase: str) -> ConnectResult:
        store = self.store
        result = ConnectResult(state=self.state, remote=target.remote)

        # Resolving
        cache = None
        if not options.force:
            try:
                cache = store.resolve_cache(target, default)
            except NotCachedError:
                logger.debug(f"No cached password for {target}")

        password = store.resolve_password(
            passphrase, target, default, cache,
            cache_only=options.cache_only,
            ask=options.ask_pass or options.force,
        )
        identity = store.resolve_identity(target, default, cache)
        result.identity = identity
        result.cache_path = cache

        # CacheWrite
        self._transition(ConnectState.CACHE_WRITE)
        if cache is None or options.ask_pass:
            result.cache_path = store.store_cache(passphrase, password, target.remote, identity)
            result.cache_written = True

        # Deciding
        self._transition(ConnectState.DECIDING)
        if options.print_password:
            self.output.write(password + "\n")
            self.output.flush()
            return self._done(result)

        if options.dry_run and options.cache_only:
            logger.info(f"Cached password found for {identity.user}@{target.remote}:{identity.port}")
            return self._done(result)

        # A cached password may be stale: a rejected login with it falls back
        # to a fresh prompt.
        verify_cache = cache is not None and not result.cache_written and not options.cache_only
        session = self._authenticate(target, identity, password, passphrase, verify_cache, result)

        # Connecting
        self._transition(ConnectState.CONNECTING)
        try:
            if options.dry_run:
                logger.info(f"Authenticated as {identity.user}@{target.remote}:{identity.port}")
                result.exit_code = 0
            else:
                result.exit_code = self.multiplexer.run_interactive(session, options.command)
        finally:
            self.multiplexer.close(session)

        return self._done(result)

    def _authenticate(self, target, identity, password, passphrase, verify_cache, result):
        mux = self.multiplexer
        try:
            return mux.connect(identity.user, password, target.remote, identity.port)
        except AuthFailedError:
            if not verify_cache:
                raise
            logger.warning(f"Cached password for {identity.user}@{target.remote}:{identity.port} was rejected")

        password = self.store.prompt_password(target.remote, identity)
        result.cache_path = self.store.store_cache(passphrase, password, target.remote, identity)
        result.cache_written = True
        return mux.connect(identity.user, password, target.remote, identity.port)

    def _done(self, result: ConnectResult) -> ConnectResult:
        self._transition(ConnectState.DONE)
        result.state = self.state
        return result


def connect(
    target: Target,
    options: ConnectOptions,
    config: Config,
    store: CredentialStore,
    passphrase: str,
    multiplexer: Optional[SessionMultiplexer] = None,
    output=None,
) -> ConnectResult:
    """Resolve the password for ``target`` and run the session described by ``options``."""
    default = Identity(user=config.default_login_user, port=config.default_login_port)
    return Connector(store, multiplexer, output).run(target, options, default, passphrase)
