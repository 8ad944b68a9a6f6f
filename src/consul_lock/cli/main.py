"""CLI entrypoint: lock, run, release."""

from __future__ import annotations

import logging
import sys

import requests

from consul_lock.cli.parser import parse_arguments
from consul_lock.core.config import BackendConfig, LockOptions, LogConfig
from consul_lock.core.constants import EXIT_CODE_ERROR
from consul_lock.core.exceptions import ConsulLockError, LockContendedError
from consul_lock.core.locks import ConsulKVBackend, LockCoordinator
from consul_lock.core.logging import flush_logging_handlers, setup_logging
from consul_lock.process import ProcessSupervisor

# Attempt to load python-dotenv if available (optional dependency)
_DOTENV_AVAILABLE = False
try:
    from dotenv import find_dotenv, load_dotenv

    _DOTENV_AVAILABLE = True
except ImportError:
    pass  # python-dotenv not installed

logger = logging.getLogger(__name__)


def run(
    argv: list[str] | None = None,
    *,
    http_session: requests.Session | None = None,
    supervisor: ProcessSupervisor | None = None,
) -> int:
    """Acquire the lock, run the program under it and return the exit code.

    Once the program has started, the exit code tracks the program only;
    release failures are logged and never change it.
    """
    args = parse_arguments(argv)
    dotenv_loaded = _DOTENV_AVAILABLE and load_dotenv(find_dotenv(usecwd=True))
    setup_logging(LogConfig.from_args(args))
    logger.debug(".env file %s", "loaded" if dotenv_loaded else "not loaded")

    try:
        options = LockOptions.from_args(args)
        backend_config = BackendConfig.from_env()
    except ConsulLockError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CODE_ERROR

    coordinator = LockCoordinator(ConsulKVBackend(backend_config, session=http_session), options)
    try:
        session_id = coordinator.acquire(args.key)
    except LockContendedError as e:
        logger.error("%s", e)
        return options.exit_code
    except ConsulLockError as e:
        logger.error("%s", e)
        return EXIT_CODE_ERROR

    try:
        return (supervisor or ProcessSupervisor()).run(args.program, args.args)
    finally:
        try:
            coordinator.release(args.key, session_id)
        except ConsulLockError as e:
            logger.warning("Failed to release lock '%s': %s", args.key, e)


def main() -> None:
    """Console script entry point."""
    code = run()
    flush_logging_handlers()
    sys.exit(code)


if __name__ == "__main__":
    main()
