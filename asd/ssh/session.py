"""
Session Multiplexer - password-authenticated paramiko session relayed to
the local terminal.

Path: asd/ssh/session.py

The relay loop waits on two readiness sources with ``select``: local input
and the SSH channel. Whichever is ready first is handled, then it waits
again. Bytes keep their order within each direction; the two directions
are independent. The loop ends only when the remote reports an exit status
(or closes the channel), never on local end-of-input alone.
"""

import logging
import os
import select
import shutil
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

import paramiko

from asd.exceptions import AuthFailedError, SessionError
from asd.ssh.errors import categorize_ssh_error
from asd.vault.codec import encode_secret


logger = logging.getLogger(__name__)


@dataclass
class SessionOptions:
    """Options for session setup and relay."""
    timeout: float = 5.0          # Seconds of silence tolerated during connect/auth and between liveness checks
    keepalive: int = 30           # Transport keepalive interval (0 disables)
    term: Optional[str] = None    # PTY terminal type (default: $TERM or xterm)
    buffer_size: int = 1024


@dataclass
class Session:
    """An authenticated SSH connection."""
    client: paramiko.SSHClient
    user: str
    remote: str
    port: int
    closed: bool = False

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        return self.client.get_transport()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"Session({self.user}@{self.remote}:{self.port}, {state})"


class SessionMultiplexer:
    """
    Opens password-authenticated sessions and relays a terminal over them.

    Usage:
        mux = SessionMultiplexer()
        session = mux.connect("admin", password, "10.0.0.1", 22)
        try:
            code = mux.run_interactive(session)
        finally:
            mux.close(session)
    """

    def __init__(self, options: Optional[SessionOptions] = None, client_factory=paramiko.SSHClient):
        self.options = options or SessionOptions()
        self._client_factory = client_factory

    def connect(self, user: str, password: str, remote: str, port: int = 22) -> Session:
        """
        Open a transport and authenticate with ``password``.

        Raises:
            AuthFailedError: If the server rejects the credentials.
            SessionError: On any other connection failure.
        """
        logger.info(f"Connecting to {user}@{remote}:{port}")
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_params = {
            'hostname': remote,
            'port': port,
            'username': user,
            'password': encode_secret(password),
            'timeout': self.options.timeout,
            'banner_timeout': self.options.timeout,
            'auth_timeout': self.options.timeout,
            'allow_agent': False,
            'look_for_keys': False,
        }

        try:
            client.connect(**connect_params)
        except paramiko.AuthenticationException as e:
            client.close()
            logger.debug(f"Authentication rejected by {remote}:{port}: {e}")
            raise AuthFailedError(user, remote, port)
        except (paramiko.SSHException, OSError) as e:
            client.close()
            category = categorize_ssh_error(e)
            raise SessionError(f"{category.value}: {remote}:{port}: {e}")

        transport = client.get_transport()
        if transport is not None and self.options.keepalive:
            transport.set_keepalive(self.options.keepalive)

        logger.info(f"Connected to {remote}:{port}")
        return Session(client=client, user=user, remote=remote, port=port)

    def run_interactive(self, session: Session, command: Optional[str] = None,
                        stdin=None, stdout=None) -> int:
        """
        Open a channel with a PTY and relay the local terminal over it.

        Args:
            session: Authenticated session.
            command: Remote command to execute. If None, start a shell.
            stdin: Local input file descriptor (default: ``sys.stdin``).
            stdout: Local binary output stream (default: ``sys.stdout.buffer``).

        Returns:
            The remote exit status.
        """
        stdin_fd = sys.stdin.fileno() if stdin is None else stdin
        stdout = sys.stdout.buffer if stdout is None else stdout

        transport = session.transport
        if transport is None or not transport.is_active():
            raise SessionError(f"Session to {session.remote} is not connected")

        try:
            channel = transport.open_session()
            width, height = shutil.get_terminal_size()
            term = self.options.term or os.environ.get("TERM", "xterm")
            channel.get_pty(term=term, width=width, height=height)
            if command:
                logger.debug(f"Executing {command!r}")
                channel.exec_command(command)
            else:
                channel.invoke_shell()
        except (paramiko.SSHException, OSError) as e:
            category = categorize_ssh_error(e)
            raise SessionError(f"{category.value}: {e}")

        try:
            with raw_terminal(stdin_fd):
                return self.relay(channel, stdin_fd, stdout, transport)
        finally:
            channel.close()

    def relay(self, channel, stdin_fd: int, stdout, transport=None) -> int:
        """
        Pump bytes between ``stdin_fd``/``stdout`` and ``channel`` until the
        remote exits.

        ``channel`` needs the paramiko Channel surface used here: ``fileno``,
        ``recv``, ``recv_ready``, ``sendall``, ``shutdown_write``,
        ``exit_status_ready`` and ``recv_exit_status``.

        A quiet period of ``options.timeout`` seconds does not end the relay
        on its own; it triggers a liveness check of ``transport``, and only a
        dead transport aborts with :class:`SessionError`.
        """
        sources = [channel, stdin_fd]
        eof_sent = False

        while True:
            if channel.exit_status_ready() and not channel.recv_ready():
                break

            readable, _, _ = select.select(sources, [], [], self.options.timeout)

            if not readable:
                if transport is not None and not transport.is_active():
                    raise SessionError("Connection lost")
                continue

            if channel in readable:
                data = channel.recv(self.options.buffer_size)
                if not data:
                    logger.debug("Remote closed its output")
                    break
                stdout.write(data)
                stdout.flush()

            if stdin_fd in readable:
                data = os.read(stdin_fd, self.options.buffer_size)
                if not data:
                    logger.debug("Local input closed, sending EOF")
                    channel.shutdown_write()
                    eof_sent = True
                    sources.remove(stdin_fd)
                else:
                    channel.sendall(data)

        code = channel.recv_exit_status()
        if not eof_sent:
            channel.shutdown_write()
        logger.debug(f"Remote exited with status {code}")
        return code

    def close(self, session: Session) -> None:
        """Disconnect ``session``. Safe to call more than once."""
        if session.closed:
            return
        session.closed = True
        try:
            session.client.close()
            logger.debug(f"Disconnected from {session.remote}")
        except Exception as e:
            logger.debug(f"Error during disconnect from {session.remote}: {e}")


@contextmanager
def raw_terminal(fd: int):
    """Put a local TTY in raw mode for the duration of the block."""
    if not os.isatty(fd):
        yield
        return

    import termios
    import tty

    saved = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)
