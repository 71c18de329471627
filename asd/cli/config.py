"""
Config CLI handler.

Handles: asd config <action>
"""

import logging
import os
import shlex
import subprocess
from typing import Optional

from asd.core.config import Config, ConfigPaths, load_config
from asd.exceptions import EditorError
from asd.vault.codec import SecretCodec
from asd.vault.models import check_path_component
from asd.vault.passphrase import PassphraseGate, rotate_passphrase
from asd.vault.resolver import CredentialStore


logger = logging.getLogger(__name__)


def handle_config(
    args,
    paths: Optional[ConfigPaths] = None,
    codec: Optional[SecretCodec] = None,
    gate: Optional[PassphraseGate] = None,
) -> int:
    """Handle config subcommand."""
    action = args.config_command or "init"

    paths = paths or ConfigPaths.default()
    codec = codec or SecretCodec()
    gate = gate or PassphraseGate(codec)

    if action == "init":
        return _config_init(paths)
    elif action == "passphrase":
        return _config_passphrase(paths, codec, gate)
    elif action == "credentials":
        return _config_credentials(paths, codec, gate, args.user)
    elif action == "edit":
        return _config_edit(paths)
    elif action == "reset":
        return _config_reset(paths)
    else:
        print(f"Unknown config command: {action}")
        return 1


def _config_init(paths: ConfigPaths) -> int:
    """Create directories and the default config file."""
    paths.ensure_directories()
    load_config(paths)
    print(f"Config:      {paths.config_file}")
    print(f"Data:        {paths.data}")
    print(f"State:       {paths.state}")
    return 0


def _config_passphrase(paths: ConfigPaths, codec: SecretCodec, gate: PassphraseGate) -> int:
    """Create the passphrase, or change it and re-encrypt every artifact."""
    paths.ensure_directories()

    if not paths.passphrase_file.exists():
        gate.obtain(paths.passphrase_file)
        print("✓ Passphrase set")
        return 0

    old = gate.obtain(paths.passphrase_file)
    print("Enter the new passphrase")
    new = gate.prompt_new()

    store = CredentialStore(codec, paths.state, paths.credentials_dir)
    artifacts = store.credential_artifacts() + store.cached_artifacts()
    count = rotate_passphrase(codec, old, new, artifacts, paths.passphrase_file)

    print(f"✓ Passphrase changed ({count} credential file(s) re-encrypted)")
    return 0


def _config_credentials(paths: ConfigPaths, codec: SecretCodec, gate: PassphraseGate, user=None) -> int:
    """Create or modify the persistent credential of a login user."""
    paths.ensure_directories()
    config = load_config(paths)
    user = user or config.default_login_user
    try:
        check_path_component(user, "user")
    except ValueError as e:
        logger.error(str(e))
        return 2

    passphrase = gate.obtain(paths.passphrase_file)
    store = CredentialStore(codec, paths.state, paths.credentials_dir)

    if codec.edit(store.credential_path(user), passphrase):
        print(f"✓ Credentials for {user} updated")
    else:
        print(f"Credentials for {user} unchanged")
    return 0


def _config_edit(paths: ConfigPaths) -> int:
    """Open the config file in the user's editor."""
    load_config(paths)
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
    command = [*shlex.split(editor), str(paths.config_file)]
    try:
        result = subprocess.run(command)
    except OSError as e:
        raise EditorError(f"Could not run editor {command[0]!r}: {e}")
    if result.returncode != 0:
        raise EditorError(f"Editor {command[0]!r} exited with status {result.returncode}")

    # Surface syntax errors right away rather than on the next connect
    load_config(paths)
    return 0


def _config_reset(paths: ConfigPaths) -> int:
    """Overwrite the config file with defaults."""
    Config.reset(paths.config_file)
    print(f"✓ Reset {paths.config_file}")
    return 0
