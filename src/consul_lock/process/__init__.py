"""Process module - supervised execution of the locked program."""

from consul_lock.process.supervisor import (
    ProcessSupervisor,
    signal_exit_code,
    translate_returncode,
)

__all__ = [
    "ProcessSupervisor",
    "signal_exit_code",
    "translate_returncode",
]
