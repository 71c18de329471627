"""
asd CLI - Main entry point.

Usage:
    asd <remote>                       # Same as: asd ssh <remote>
    asd ssh <remote> [options] [-- command ...]
    asd config <action>
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from asd import __version__
from asd.core.log import configure_logging, verbosity_level
from asd.exceptions import AsdError


logger = logging.getLogger("asd.cli")

SUBCOMMANDS = ("ssh", "config")
TOP_LEVEL_FLAGS = ("-h", "--help", "-V", "--version")


def normalize_argv(argv: List[str]) -> List[str]:
    """Insert the implied ``ssh`` subcommand when the first token isn't one we know."""
    if argv and argv[0] not in SUBCOMMANDS and argv[0] not in TOP_LEVEL_FLAGS:
        return ["ssh", *argv]
    return list(argv)


def split_remote_command(argv: List[str]) -> Tuple[List[str], List[str]]:
    """
    Split ``ssh ... -- command ...`` into the options and the remote command.

    Everything after the first ``--`` is the command, verbatim.
    """
    if argv and argv[0] == "ssh" and "--" in argv:
        index = argv.index("--")
        return argv[:index], argv[index + 1:]
    return list(argv), []


def parse_args(argv: List[str], parser: Optional[argparse.ArgumentParser] = None) -> argparse.Namespace:
    """Parse a full command line, including the implied ``ssh`` and a trailing command."""
    parser = parser or build_parser()
    argv, remote_command = split_remote_command(normalize_argv(argv))
    args = parser.parse_args(argv)
    if args.command == "ssh":
        args.remote_command = remote_command
    return args


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asd",
        description="SSH with encrypted, cached passwords",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  ssh         Open SSH connection to given remote [default]
  config      Configure application

Examples:
  # Connect, prompting for the password once and caching it
  asd admin@10.0.0.1

  # Only use a cached password, never prompt
  asd ssh 10.0.0.1 --cache

  # Store a password reused across hosts for user 'admin'
  asd config credentials admin

Use 'asd <command> --help' for more information on a command.
""",
    )

    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")

    ssh_parser = subparsers.add_parser(
        "ssh",
        help="Open SSH connection to given remote [default]",
        description="Open SSH connection to given remote",
        usage="asd ssh <remote> [options] [-- command ...]",
        epilog="Anything after -- runs on the remote instead of a login shell.",
    )
    _setup_ssh_parser(ssh_parser)

    config_parser = subparsers.add_parser(
        "config",
        help="Configure application",
        description="Configure application",
    )
    _setup_config_parser(config_parser)

    return parser


def _add_verbosity(parser: argparse.ArgumentParser):
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress most warning and diagnostic messages",
    )
    group.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print debugging messages",
    )


def _setup_ssh_parser(parser: argparse.ArgumentParser):
    """Set up ssh subcommand parser."""
    parser.add_argument("remote", help="Remote to connect to: [user@]host[:port]")
    parser.add_argument(
        "--ask-pass", "-k",
        action="store_true",
        help="Ask for connection password",
    )
    parser.add_argument(
        "--cache", "-c",
        action="store_true",
        help="Disable password renewal (and connectivity test in case of --dry-run)",
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force password renewal, invalidating cache",
    )
    parser.add_argument(
        "--dry-run", "-u",
        action="store_true",
        help="Do not open a session; merely test the connection",
    )
    parser.add_argument(
        "--print", "-p",
        dest="print_password",
        action="store_true",
        help="Print password (implies --dry-run)",
    )
    _add_verbosity(parser)


def _setup_config_parser(parser: argparse.ArgumentParser):
    """Set up config subcommand parser."""
    subparsers = parser.add_subparsers(dest="config_command", metavar="<action>")

    for name, help_text in (
        ("init", "Initialize configuration and create necessary folders"),
        ("passphrase", "Set/change passphrase"),
        ("edit", "Open config file"),
        ("reset", "Reset config file to the base configuration"),
    ):
        _add_verbosity(subparsers.add_parser(name, help=help_text))

    credentials_parser = subparsers.add_parser("credentials", help="Create/modify specified credentials")
    credentials_parser.add_argument("user", nargs="?", help="Login user (default: default_login_user)")
    _add_verbosity(credentials_parser)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parse_args(sys.argv[1:] if argv is None else argv, parser)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(verbosity_level(getattr(args, "quiet", False), getattr(args, "verbose", False)))

    try:
        if args.command == "ssh":
            from asd.cli.ssh import handle_ssh

            return handle_ssh(args)
        elif args.command == "config":
            from asd.cli.config import handle_config

            return handle_config(args)
        else:
            parser.print_help()
            return 1
    except AsdError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
