"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
import textwrap
from collections import deque

import pytest

from asd.core.config import ConfigPaths
from asd.vault.codec import SecretCodec
from asd.vault.models import Identity
from asd.vault.resolver import CredentialStore


# Stand-in for gpg: "ciphertext" is the base64 passphrase plus base64 payload.
# Without --passphrase it behaves as if gpg-agent already holds the key.
FAKE_GPG = textwrap.dedent(
    """
    import base64
    import sys

    args = sys.argv[1:]
    passphrase = None
    if "--passphrase" in args:
        passphrase = args[args.index("--passphrase") + 1]

    if "--symmetric" in args:
        if passphrase is None:
            sys.stderr.write("gpg: cannot symmetric-encrypt without a passphrase\\n")
            sys.exit(2)
        data = sys.stdin.buffer.read()
        sys.stdout.write("FAKEGPG " + base64.b64encode(passphrase.encode()).decode() + "\\n")
        sys.stdout.write(base64.b64encode(data).decode() + "\\n")
        sys.exit(0)

    if "--decrypt" in args:
        path = args[-1]
        with open(path) as f:
            header, body = f.read().split("\\n", 1)
        stored = base64.b64decode(header.split(" ", 1)[1]).decode()
        if passphrase is not None and passphrase != stored:
            sys.stderr.write("gpg: AES256.CFB encrypted data\\n")
            sys.stderr.write("gpg: encrypted with 1 passphrase\\n")
            sys.stderr.write("gpg: decryption failed: Bad session key\\n")
            sys.exit(2)
        sys.stdout.buffer.write(base64.b64decode(body))
        sys.exit(0)

    sys.stderr.write("gpg: unsupported invocation\\n")
    sys.exit(2)
    """
)


@pytest.fixture
def fake_gpg(tmp_path) -> list:
    """Command prefix running the fake gpg script."""
    script = tmp_path / "fake_gpg.py"
    script.write_text(FAKE_GPG)
    return [sys.executable, str(script)]


@pytest.fixture
def codec(fake_gpg) -> SecretCodec:
    return SecretCodec(command=fake_gpg)


@pytest.fixture
def paths(tmp_path) -> ConfigPaths:
    paths = ConfigPaths.from_base(tmp_path / "asd")
    paths.ensure_directories()
    return paths


@pytest.fixture
def passphrase() -> str:
    return "correct horse battery staple"


@pytest.fixture
def default_identity() -> Identity:
    return Identity(user="alice", port=22)


class ScriptedPrompt:
    """Replays answers for getpass-style prompts and records the questions."""

    def __init__(self, *answers: str):
        self.answers = deque(answers)
        self.questions = []

    def __call__(self, question: str) -> str:
        self.questions.append(question)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {question!r}")
        return self.answers.popleft()


def no_prompt(question: str) -> str:
    raise AssertionError(f"Unexpected prompt: {question!r}")


@pytest.fixture
def store_factory(codec, paths):
    """Build a CredentialStore over the temporary directories."""

    def factory(prompt=no_prompt, ttl=None, clock=None):
        kwargs = {"ttl": ttl, "prompt": prompt}
        if clock is not None:
            kwargs["clock"] = clock
        return CredentialStore(codec, paths.state, paths.credentials_dir, **kwargs)

    return factory


class ScriptedChannel:
    """
    Minimal paramiko Channel look-alike for relay tests.

    ``fileno`` is a real pipe that is readable exactly while output is
    pending, so ``select`` behaves as it does with paramiko.
    """

    def __init__(self, output=(), exit_status=None, on_input=None, on_eof=None):
        self._r, self._w = os.pipe()
        self._pending = deque()
        self.exit_status = None
        self.sent = []
        self.eof_count = 0
        self._on_input = on_input
        self._on_eof = on_eof
        for chunk in output:
            self.push(chunk)
        if exit_status is not None:
            self.exit(exit_status)

    def push(self, data: bytes):
        self._pending.append(data)
        os.write(self._w, b"\0")

    def exit(self, status: int):
        self.exit_status = status

    def fileno(self):
        return self._r

    def recv_ready(self):
        return bool(self._pending)

    def recv(self, size):
        if not self._pending:
            return b""
        os.read(self._r, 1)
        return self._pending.popleft()

    def sendall(self, data):
        self.sent.append(data)
        if self._on_input:
            self._on_input(self, data)

    def shutdown_write(self):
        self.eof_count += 1
        if self._on_eof:
            self._on_eof(self)

    def exit_status_ready(self):
        return self.exit_status is not None

    def recv_exit_status(self):
        return self.exit_status

    def close(self):
        for fd in (self._r, self._w):
            try:
                os.close(fd)
            except OSError:
                pass


@pytest.fixture
def local_input():
    """A (read_fd, write_fd) pipe standing in for the local terminal."""
    r, w = os.pipe()
    fds = {"r": r, "w": w}
    yield fds
    for fd in fds.values():
        try:
            os.close(fd)
        except OSError:
            pass
