"""
consul-lock - run a program while holding a distributed lock

Acquires a named lock in a Consul-like coordination backend, runs the given
program under it, and releases the lock when the program exits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from consul_lock.core.version import __version__

__all__ = ["__version__", "main"]

if TYPE_CHECKING:
    from consul_lock.cli.main import main


def __getattr__(name: str) -> Any:
    if name == "main":
        from consul_lock.cli.main import main as cli_main

        return cli_main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
