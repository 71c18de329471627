"""
Master passphrase handling.

The passphrase lives in ``passphrase.gpg``, encrypted with itself. Reading it
back relies on gpg's own agent cache (or its prompt) to supply the key, so a
session only has to type the passphrase once.
"""

import getpass
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, List, Tuple

from asd.vault.codec import SecretCodec, encode_secret


logger = logging.getLogger(__name__)


class PassphraseGate:
    """Obtains the master passphrase that unlocks every credential artifact."""

    def __init__(
        self,
        codec: SecretCodec,
        prompt: Callable[[str], str] = getpass.getpass,
        output: Callable[[str], None] = print,
    ):
        self.codec = codec
        self._prompt = prompt
        self._output = output

    def obtain(self, passphrase_file: Path) -> str:
        """
        Return the master passphrase, creating the artifact on first use.

        Raises:
            CipherFailedError: If the existing artifact cannot be decrypted.
        """
        passphrase_file = Path(passphrase_file)
        if not passphrase_file.exists():
            logger.info(f"No passphrase file at {passphrase_file}, creating one")
            passphrase = self.prompt_new()
            self.store(passphrase, passphrase_file)
            return passphrase

        return self.codec.decrypt(None, passphrase_file)

    def prompt_new(self) -> str:
        """Prompt until two non-empty entries match."""
        while True:
            first = self._prompt("Passphrase: ").strip()
            second = self._prompt("Confirm passphrase: ").strip()
            if not first:
                self._output("Passphrase must not be empty! Try again.")
            elif first != second:
                self._output("Passphrases do not match! Try again.")
            else:
                return first

    def store(self, passphrase: str, passphrase_file: Path) -> None:
        """Write the self-encrypted passphrase artifact."""
        self.codec.encrypt(passphrase, encode_secret(passphrase), passphrase_file)


def rotate_passphrase(
    codec: SecretCodec,
    old: str,
    new: str,
    artifacts: Iterable[Path],
    passphrase_file: Path,
) -> int:
    """
    Re-encrypt every artifact under ``new`` and rewrite the passphrase file.

    Everything is decrypted before anything is written, and the new
    ciphertexts are staged next to their targets. Files are only swapped in
    once every encryption succeeded, the passphrase file last, so a wrong
    old passphrase or a failure while encrypting leaves all files untouched.

    Returns:
        Number of artifacts re-encrypted (excluding the passphrase file).
    """
    decrypted: List[Tuple[Path, str]] = []
    for path in artifacts:
        decrypted.append((Path(path), codec.decrypt(old, path)))
    decrypted.append((Path(passphrase_file), new))

    staged: List[Tuple[Path, Path]] = []
    try:
        for path, plaintext in decrypted:
            pending = _staging_path(path)
            staged.append((pending, path))
            codec.encrypt(new, encode_secret(plaintext), pending)
    except BaseException:
        for pending, _ in staged:
            pending.unlink(missing_ok=True)
        raise

    for pending, path in staged:
        os.replace(pending, path)
        logger.debug(f"Re-encrypted {path}")

    count = len(staged) - 1
    logger.info(f"Passphrase changed, {count} artifact(s) re-encrypted")
    return count


def _staging_path(path: Path) -> Path:
    """Hidden sibling of ``path``, skipped when artifacts are listed."""
    return path.with_name(f".{path.name}.rotate")
