"""Tests for SessionMultiplexer: relay loop, connect errors, close."""

from __future__ import annotations

import io
import os
import socket
import sys

import paramiko
import pytest

from asd.exceptions import AuthFailedError, SessionError
from asd.ssh.errors import SSHErrorCategory, categorize_ssh_error
from asd.ssh.session import Session, SessionMultiplexer, SessionOptions, raw_terminal
from tests.conftest import ScriptedChannel

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="select() on pipes is POSIX-only")


@pytest.fixture
def mux():
    return SessionMultiplexer(SessionOptions(timeout=0.2))


class TestRelay:
    def test_output_then_exit_status(self, mux, local_input):
        channel = ScriptedChannel(output=[b"ok\n"], exit_status=7)
        out = io.BytesIO()
        try:
            code = mux.relay(channel, local_input["r"], out)
        finally:
            channel.close()

        assert code == 7
        assert out.getvalue() == b"ok\n"
        assert channel.eof_count == 1

    def test_output_order_preserved(self, mux, local_input):
        channel = ScriptedChannel(output=[b"one ", b"two ", b"three"], exit_status=0)
        out = io.BytesIO()
        try:
            mux.relay(channel, local_input["r"], out)
        finally:
            channel.close()

        assert out.getvalue() == b"one two three"

    def test_local_input_forwarded(self, mux, local_input):
        def respond(chan, data):
            chan.push(b"echo:" + data)
            chan.exit(0)

        channel = ScriptedChannel(on_input=respond)
        os.write(local_input["w"], b"ls\n")
        out = io.BytesIO()
        try:
            code = mux.relay(channel, local_input["r"], out)
        finally:
            channel.close()

        assert code == 0
        assert channel.sent == [b"ls\n"]
        assert out.getvalue() == b"echo:ls\n"

    def test_local_eof_sends_eof_once_and_waits_for_exit(self, mux, local_input):
        def finish(chan):
            chan.push(b"bye\n")
            chan.exit(3)

        channel = ScriptedChannel(on_eof=finish)
        os.close(local_input.pop("w"))
        out = io.BytesIO()
        try:
            code = mux.relay(channel, local_input["r"], out)
        finally:
            channel.close()

        assert code == 3
        assert out.getvalue() == b"bye\n"
        assert channel.eof_count == 1

    def test_remote_close_ends_relay(self, mux, local_input):
        channel = ScriptedChannel(output=[b"partial"])
        # Readable with nothing queued: the remote closed its side
        os.write(channel._w, b"\0")
        channel.recv_exit_status = lambda: -1
        out = io.BytesIO()
        try:
            code = mux.relay(channel, local_input["r"], out)
        finally:
            channel.close()

        assert code == -1
        assert out.getvalue() == b"partial"

    def test_dead_transport_aborts(self, mux, local_input):
        class DeadTransport:
            def is_active(self):
                return False

        channel = ScriptedChannel()
        try:
            with pytest.raises(SessionError, match="Connection lost"):
                mux.relay(channel, local_input["r"], io.BytesIO(), transport=DeadTransport())
        finally:
            channel.close()

    def test_quiet_live_session_keeps_relaying(self, mux, local_input):
        channel = ScriptedChannel()

        class LiveTransport:
            checks = 0

            def is_active(self):
                self.checks += 1
                if self.checks == 2:
                    channel.push(b"late")
                    channel.exit(0)
                return True

        transport = LiveTransport()
        out = io.BytesIO()
        try:
            code = mux.relay(channel, local_input["r"], out, transport=transport)
        finally:
            channel.close()

        assert code == 0
        assert out.getvalue() == b"late"
        assert transport.checks == 2


class FakeClient:
    """paramiko.SSHClient stand-in."""

    def __init__(self, error=None):
        self.error = error
        self.connect_kwargs = None
        self.closed = 0
        self.transport = FakeTransport()

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if self.error:
            raise self.error

    def get_transport(self):
        return self.transport

    def close(self):
        self.closed += 1


class FakeTransport:
    keepalive = None

    def set_keepalive(self, interval):
        self.keepalive = interval

    def is_active(self):
        return True


class PtyChannel(ScriptedChannel):
    """ScriptedChannel that also records PTY and command requests."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pty = None
        self.executed = None
        self.shell = False
        self.closed = 0

    def get_pty(self, term, width, height):
        self.pty = (term, width, height)

    def exec_command(self, command):
        self.executed = command

    def invoke_shell(self):
        self.shell = True

    def close(self):
        self.closed += 1
        super().close()


class ChannelTransport(FakeTransport):
    def __init__(self, channel=None, active=True, error=None):
        self.channel = channel
        self.active = active
        self.error = error

    def open_session(self):
        if self.error:
            raise self.error
        return self.channel

    def is_active(self):
        return self.active


def _session(transport):
    client = FakeClient()
    client.transport = transport
    return Session(client=client, user="alice", remote="host", port=22)


@pytest.fixture
def terminal_size(monkeypatch):
    monkeypatch.setattr("asd.ssh.session.shutil.get_terminal_size", lambda *a, **k: os.terminal_size((120, 40)))


class TestRunInteractive:
    @pytest.fixture
    def mux(self):
        return SessionMultiplexer(SessionOptions(timeout=0.2, term="vt100"))

    def test_shell_gets_pty_at_local_size(self, mux, local_input, terminal_size):
        channel = PtyChannel(output=[b"hi"], exit_status=0)
        out = io.BytesIO()

        code = mux.run_interactive(_session(ChannelTransport(channel)), stdin=local_input["r"], stdout=out)

        assert code == 0
        assert out.getvalue() == b"hi"
        assert channel.pty == ("vt100", 120, 40)
        assert channel.shell is True
        assert channel.executed is None
        assert channel.closed == 1

    def test_command_is_executed_instead_of_shell(self, mux, local_input, terminal_size):
        channel = PtyChannel(exit_status=4)

        code = mux.run_interactive(
            _session(ChannelTransport(channel)), "uptime", stdin=local_input["r"], stdout=io.BytesIO()
        )

        assert code == 4
        assert channel.executed == "uptime"
        assert channel.shell is False
        assert channel.closed == 1

    def test_inactive_transport_is_rejected(self, mux, local_input):
        with pytest.raises(SessionError, match="not connected"):
            mux.run_interactive(_session(ChannelTransport(active=False)), stdin=local_input["r"], stdout=io.BytesIO())

    def test_channel_open_failure_is_categorized(self, mux, local_input, terminal_size):
        transport = ChannelTransport(error=paramiko.ChannelException(2, "Connect failed"))

        with pytest.raises(SessionError, match="channel_error"):
            mux.run_interactive(_session(transport), stdin=local_input["r"], stdout=io.BytesIO())

    def test_channel_closed_when_relay_fails(self, mux, local_input, terminal_size, monkeypatch):
        channel = PtyChannel()

        def lost(*args, **kwargs):
            raise SessionError("Connection lost")

        monkeypatch.setattr(mux, "relay", lost)
        with pytest.raises(SessionError, match="Connection lost"):
            mux.run_interactive(_session(ChannelTransport(channel)), stdin=local_input["r"], stdout=io.BytesIO())
        assert channel.closed == 1


class TestConnect:
    def test_password_auth_params(self):
        client = FakeClient()
        mux = SessionMultiplexer(SessionOptions(timeout=5, keepalive=15), client_factory=lambda: client)

        session = mux.connect("alice", "pw", "host", 2200)

        assert session.user == "alice" and session.remote == "host" and session.port == 2200
        kwargs = client.connect_kwargs
        assert kwargs["hostname"] == "host"
        assert kwargs["port"] == 2200
        assert kwargs["username"] == "alice"
        assert kwargs["password"] == b"pw"
        assert kwargs["allow_agent"] is False
        assert kwargs["look_for_keys"] is False
        assert kwargs["timeout"] == 5
        assert client.transport.keepalive == 15

    def test_auth_failure(self):
        client = FakeClient(error=paramiko.AuthenticationException("Authentication failed."))
        mux = SessionMultiplexer(client_factory=lambda: client)

        with pytest.raises(AuthFailedError) as excinfo:
            mux.connect("alice", "bad", "host", 22)
        assert excinfo.value.user == "alice"
        assert client.closed == 1

    def test_network_failure(self):
        client = FakeClient(error=socket.gaierror(-2, "Name or service not known"))
        mux = SessionMultiplexer(client_factory=lambda: client)

        with pytest.raises(SessionError, match="dns_failure") as excinfo:
            mux.connect("alice", "pw", "nowhere", 22)
        assert not isinstance(excinfo.value, AuthFailedError)
        assert client.closed == 1


class TestClose:
    def test_close_is_idempotent(self):
        client = FakeClient()
        mux = SessionMultiplexer(client_factory=lambda: client)
        session = Session(client=client, user="alice", remote="host", port=22)

        mux.close(session)
        mux.close(session)

        assert client.closed == 1
        assert session.closed

    def test_close_tolerates_dead_transport(self):
        class BrokenClient(FakeClient):
            def close(self):
                raise EOFError("transport already gone")

        mux = SessionMultiplexer()
        session = Session(client=BrokenClient(), user="alice", remote="host", port=22)
        mux.close(session)
        assert session.closed


class TestRawTerminal:
    def test_non_tty_is_left_alone(self, local_input):
        with raw_terminal(local_input["r"]):
            pass

    def test_tty_switched_to_raw_and_restored(self, monkeypatch):
        import termios
        import tty

        calls = []
        monkeypatch.setattr("asd.ssh.session.os.isatty", lambda fd: True)
        monkeypatch.setattr(termios, "tcgetattr", lambda fd: ["saved"])
        monkeypatch.setattr(termios, "tcsetattr", lambda fd, when, attrs: calls.append(("restore", attrs)))
        monkeypatch.setattr(tty, "setraw", lambda fd: calls.append(("setraw", fd)))
        monkeypatch.setattr(tty, "setcbreak", lambda fd: calls.append(("setcbreak", fd)))

        with pytest.raises(RuntimeError):
            with raw_terminal(5):
                calls.append(("body", None))
                raise RuntimeError("boom")

        assert calls == [("setraw", 5), ("body", None), ("restore", ["saved"])]


class TestCategorize:
    @pytest.mark.parametrize(
        "error, category",
        [
            (paramiko.AuthenticationException("nope"), SSHErrorCategory.AUTH_FAILURE),
            (socket.gaierror(-2, "Name or service not known"), SSHErrorCategory.DNS_FAILURE),
            (socket.timeout("timed out"), SSHErrorCategory.CONNECTION_TIMEOUT),
            (ConnectionRefusedError(111, "Connection refused"), SSHErrorCategory.CONNECTION_REFUSED),
            (paramiko.SSHException("Incompatible ssh peer (no acceptable kex algorithm)"),
             SSHErrorCategory.KEY_EXCHANGE_FAILURE),
            (paramiko.SSHException("Error reading SSH protocol banner"), SSHErrorCategory.PROTOCOL_ERROR),
            (OSError("boom"), SSHErrorCategory.SOCKET_ERROR),
            (ValueError("boom"), SSHErrorCategory.UNKNOWN),
        ],
    )
    def test_categories(self, error, category):
        assert categorize_ssh_error(error) == category
