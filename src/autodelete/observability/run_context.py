"""Run ID propagation for log correlation.

The id of the retention run being executed is kept in a context variable so
every log line emitted while the run is open carries it.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

# Context variable for run_id (async-safe)
run_id_var: ContextVar[Optional[int]] = ContextVar("run_id", default=None)


def get_run_id() -> str:
    """Get current run ID from context.

    Returns:
        str: Current run ID or "no-run" if no run is open
    """
    run_id = run_id_var.get()
    return str(run_id) if run_id is not None else "no-run"


def set_run_id(run_id: Optional[int]) -> None:
    """Set run ID in current context.

    Args:
        run_id: Run ID to set (None clears it)
    """
    run_id_var.set(run_id)


@contextmanager
def run_context(run_id: int) -> Iterator[None]:
    """Bind ``run_id`` for the duration of a ``with`` block."""
    token = run_id_var.set(run_id)
    try:
        yield
    finally:
        run_id_var.reset(token)
