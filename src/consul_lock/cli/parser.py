"""CLI argument parsing."""

from __future__ import annotations

import argparse

from consul_lock.core.constants import DEFAULT_LOCK_DELAY, EXIT_CODE_ERROR, EXIT_CODE_USAGE
from consul_lock.core.version import __version__

# Attempt to load argcomplete for shell tab-completion (optional dependency)
_ARGCOMPLETE_AVAILABLE = False
try:
    import argcomplete

    _ARGCOMPLETE_AVAILABLE = True
except ImportError:
    pass  # argcomplete not installed


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: '{value}'") from None
    if parsed < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {parsed}")
    return parsed


class _StderrVersionAction(argparse.Action):
    """Print the version to stderr and exit, leaving stdout to the supervised program."""

    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings=option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.exit(message=f"version: {__version__}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="consul-lock",
        usage="%(prog)s [-nNxX] [--lock-delay SECONDS] KEY program [ arg ... ]",
        description="Run a program while holding a lock on KEY in the coordination backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # Run a nightly job on exactly one host at a time
  consul-lock nightly-backup /usr/local/bin/backup.sh --full

  # Skip the run if another host already holds the lock
  consul-lock -n -x nightly-backup /usr/local/bin/backup.sh

  # Point at a remote agent with an ACL token
  CONSUL_HTTP_ADDR=consul.internal:8500 CONSUL_HTTP_TOKEN=... consul-lock KEY cmd

Environment:
  CONSUL_HTTP_ADDR    Backend address (default: http://localhost:8500)
  CONSUL_HTTP_TOKEN   ACL token sent with every request
  CONSUL_LOCK_PREFIX  KV namespace for lock keys (default: locks)
  CONSUL_LOCK_WAIT    Long-poll wait while blocked (default: 10s)
  CONSUL_LOCK_SESSION_MODE  structured (default) or empty: session-create request shape
  DEBUG               Any non-empty value enables verbose tracing

Exit Codes:
  N   - The program's own exit code (or the number of a forwarded signal)
  {EXIT_CODE_ERROR} - Lock/backend failure, program could not start, or undecodable status
  {EXIT_CODE_ERROR} - KEY is locked and -n is given (0 with -x)
  {EXIT_CODE_USAGE}   - Usage error
        """,
    )

    wait_group = parser.add_mutually_exclusive_group()
    wait_group.add_argument(
        "-n",
        dest="no_wait",
        action="store_true",
        help="No delay. If KEY is locked by another process, consul-lock gives up.",
    )
    wait_group.add_argument(
        "-N",
        dest="no_wait",
        action="store_false",
        help="(Default.) Delay. If KEY is locked by another process, consul-lock waits until it can obtain a new lock.",
    )

    exit_group = parser.add_mutually_exclusive_group()
    exit_group.add_argument(
        "-x",
        dest="exit_zero",
        action="store_true",
        help="If KEY is locked, consul-lock exits zero.",
    )
    exit_group.add_argument(
        "-X",
        dest="exit_zero",
        action="store_false",
        help="(Default.) If KEY is locked, consul-lock prints an error message and exits nonzero.",
    )

    parser.set_defaults(no_wait=False, exit_zero=False)

    parser.add_argument(
        "--lock-delay",
        type=_non_negative_int,
        default=DEFAULT_LOCK_DELAY,
        metavar="SECONDS",
        help=f"Session LockDelay seconds (default: {DEFAULT_LOCK_DELAY})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        default=None,
        help="Diagnostic verbosity (default: WARNING, or DEBUG when $DEBUG is set)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Diagnostic output format on stderr (default: text)",
    )
    parser.add_argument(
        "--version", action=_StderrVersionAction, help="Show program version on stderr and exit"
    )

    parser.add_argument("key", metavar="KEY", help="Lock name")
    parser.add_argument("program", help="Program to run while the lock is held")
    parser.add_argument("args", nargs=argparse.REMAINDER, metavar="arg", help="Arguments passed to the program")
    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = build_parser()
    if _ARGCOMPLETE_AVAILABLE:
        argcomplete.autocomplete(parser)
    return parser.parse_args(argv)
