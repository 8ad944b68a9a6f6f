"""CLI module - Command-line interface components."""

from consul_lock.cli.parser import build_parser, parse_arguments

__all__ = [
    "build_parser",
    "parse_arguments",
]
