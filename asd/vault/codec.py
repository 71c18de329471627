"""
Secret Codec - gpg-backed encryption of secrets to and from files.

This module handles:
- Encrypting a byte payload with a passphrase into a file
- Decrypting a file back into text
- Editing an encrypted file in the user's editor, re-encrypting on change

Every call spawns exactly one cipher process. Plaintext is only ever held
in memory, apart from the short-lived editor buffer described in
:meth:`SecretCodec.edit`.
"""

import logging
import os
import shlex
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Sequence

from asd.exceptions import CipherFailedError, EditorError, NotFoundError


logger = logging.getLogger(__name__)

DEFAULT_CIPHER_COMMAND = ("gpg",)

# Memory-backed scratch space for the editor buffer when the platform has one
SHM_DIR = Path("/dev/shm")


def last_diagnostic_line(stderr: bytes) -> str:
    """Return the last non-empty line of a cipher tool's diagnostic output."""
    lines = [line.strip() for line in stderr.decode("utf-8", errors="replace").splitlines()]
    lines = [line for line in lines if line]
    return lines[-1] if lines else "cipher tool failed without diagnostics"


# Secrets that are not valid UTF-8 survive the bytes -> str -> bytes round trip
SECRET_ENCODING = "utf-8"
SECRET_ERRORS = "surrogateescape"


def decode_secret(data: bytes) -> str:
    return data.decode(SECRET_ENCODING, errors=SECRET_ERRORS)


def encode_secret(text: str) -> bytes:
    """Inverse of :func:`decode_secret`, restoring any undecodable bytes."""
    return text.encode(SECRET_ENCODING, errors=SECRET_ERRORS)


def normalize_secret(text: str) -> str:
    """Trim every line and drop leading/trailing blank lines."""
    return "\n".join(line.strip() for line in text.splitlines()).strip()


class SecretCodec:
    """
    Encrypts and decrypts secrets through an external gpg process.

    Usage:
        codec = SecretCodec()
        codec.encrypt("passphrase", b"s3cret", Path("~/.local/state/asd/me@host:22"))
        password = codec.decrypt("passphrase", Path("~/.local/state/asd/me@host:22"))
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_CIPHER_COMMAND,
        editor: Optional[Sequence[str]] = None,
    ):
        """
        Args:
            command: Cipher tool argv prefix (default: ``gpg``).
            editor: Editor argv prefix. If None, ``$VISUAL``/``$EDITOR``/vi.
        """
        self.command = list(command)
        self.editor = list(editor) if editor else None

    def _batch_args(self, passphrase: str) -> list:
        return [
            *self.command,
            "--batch",
            "--yes",
            "--quiet",
            "--pinentry-mode",
            "loopback",
            "--passphrase",
            passphrase,
        ]

    def encrypt(self, passphrase: str, plaintext: bytes, destination: Path) -> None:
        """
        Encrypt ``plaintext`` with ``passphrase`` and write it to ``destination``.

        Raises:
            CipherFailedError: If the cipher tool exits non-zero.
            OSError: If the tool cannot be spawned or the file cannot be written.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        logger.debug(f"Encrypting {len(plaintext)} bytes to {destination}")
        proc = subprocess.Popen(
            [*self._batch_args(passphrase), "--symmetric"],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        # The writer must run alongside the readers, otherwise a payload
        # larger than the pipe buffer deadlocks against gpg's own output.
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="asd-codec") as pool:
            writer = pool.submit(self._feed, proc.stdin, plaintext)
            stderr_reader = pool.submit(proc.stderr.read)
            ciphertext = proc.stdout.read()
            writer.result()
            stderr = stderr_reader.result()

        proc.stdout.close()
        proc.stderr.close()
        returncode = proc.wait()

        if returncode != 0:
            raise CipherFailedError(last_diagnostic_line(stderr), returncode)

        with open(destination, "wb") as f:
            f.write(ciphertext)
        try:
            os.chmod(destination, 0o600)
        except OSError:
            logger.debug(f"Could not restrict permissions on {destination}")

    @staticmethod
    def _feed(stream, data: bytes) -> None:
        """Write ``data`` to the process input and close it."""
        try:
            stream.write(data)
        except BrokenPipeError:
            # The process died early; its exit status carries the error.
            logger.debug("Cipher process closed its input early")
        finally:
            try:
                stream.close()
            except BrokenPipeError:
                pass

    def decrypt(self, passphrase: Optional[str], source: Path) -> str:
        """
        Decrypt ``source`` and return its text with trailing whitespace removed.

        Args:
            passphrase: Key to use. If None, gpg is left to find the key
                itself (agent cache or interactive prompt).
            source: Encrypted file.

        Returns:
            The plaintext. Bytes that are not valid UTF-8 are kept as
            surrogate escapes; :func:`encode_secret` restores them.

        Raises:
            NotFoundError: If ``source`` does not exist.
            CipherFailedError: If the cipher tool exits non-zero.
        """
        source = Path(source)
        if not source.exists():
            raise NotFoundError(source)

        if passphrase is None:
            args = [*self.command, "--quiet", "--decrypt", str(source)]
        else:
            args = [*self._batch_args(passphrase), "--decrypt", str(source)]

        logger.debug(f"Decrypting {source}")
        result = subprocess.run(args, stdin=subprocess.DEVNULL, capture_output=True)
        if result.returncode != 0:
            raise CipherFailedError(last_diagnostic_line(result.stderr), result.returncode)

        return decode_secret(result.stdout).rstrip()

    def edit(self, path: Path, passphrase: str) -> bool:
        """
        Open the decrypted content of ``path`` in an editor.

        A missing file edits as empty content. The file is re-encrypted only
        when the normalized text changed.

        Returns:
            True if the file was rewritten, False if content was unchanged.

        Raises:
            CipherFailedError: If decrypting or encrypting fails.
            EditorError: If the editor cannot be run or exits non-zero.
        """
        path = Path(path)
        try:
            original = self.decrypt(passphrase, path)
        except NotFoundError:
            original = ""

        edited = self._run_editor(original)

        if normalize_secret(edited) == normalize_secret(original):
            logger.info(f"{path} unchanged")
            return False

        self.encrypt(passphrase, encode_secret(normalize_secret(edited)), path)
        logger.info(f"{path} updated")
        return True

    def _editor_command(self) -> list:
        if self.editor:
            return list(self.editor)
        editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
        return shlex.split(editor)

    def _run_editor(self, content: str) -> str:
        """Round-trip ``content`` through the editor via a private scratch file."""
        scratch_dir = str(SHM_DIR) if SHM_DIR.is_dir() and os.access(SHM_DIR, os.W_OK) else None
        fd, name = tempfile.mkstemp(prefix="asd-", suffix=".txt", dir=scratch_dir)
        scratch = Path(name)
        try:
            with os.fdopen(fd, "w", encoding=SECRET_ENCODING, errors=SECRET_ERRORS) as f:
                f.write(content)

            command = [*self._editor_command(), str(scratch)]
            try:
                result = subprocess.run(command)
            except OSError as e:
                raise EditorError(f"Could not run editor {command[0]!r}: {e}")
            if result.returncode != 0:
                raise EditorError(f"Editor {command[0]!r} exited with status {result.returncode}")

            return scratch.read_text(encoding=SECRET_ENCODING, errors=SECRET_ERRORS)
        finally:
            scratch.unlink(missing_ok=True)
