"""
SSH CLI handler.

Handles: asd ssh <remote> [options] [command]
"""

import logging

from asd.core.config import ConfigPaths, load_config
from asd.core.connect import ConnectOptions, connect
from asd.vault.codec import SecretCodec
from asd.vault.models import Target
from asd.vault.passphrase import PassphraseGate
from asd.vault.resolver import CredentialStore


logger = logging.getLogger(__name__)


def options_from_args(args) -> ConnectOptions:
    """Build ConnectOptions from parsed ``ssh`` arguments."""
    command = " ".join(args.remote_command) if args.remote_command else None
    return ConnectOptions(
        ask_pass=args.ask_pass,
        cache_only=args.cache,
        force=args.force,
        dry_run=args.dry_run or args.print_password,
        print_password=args.print_password,
        command=command,
    )


def handle_ssh(args) -> int:
    """Handle ssh subcommand."""
    if args.cache and (args.ask_pass or args.force):
        logger.error("--cache cannot be combined with --ask-pass or --force")
        return 2

    try:
        target = Target.parse(args.remote)
    except ValueError as e:
        logger.error(str(e))
        return 2

    paths = ConfigPaths.default()
    paths.ensure_directories()
    config = load_config(paths)

    codec = SecretCodec()
    passphrase = PassphraseGate(codec).obtain(paths.passphrase_file)

    store = CredentialStore(
        codec,
        state_dir=paths.state,
        credentials_dir=paths.credentials_dir,
        ttl=config.password_ttl,
    )

    result = connect(target, options_from_args(args), config, store, passphrase)
    return result.exit_code
