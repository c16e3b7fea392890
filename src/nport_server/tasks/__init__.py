"""Background tasks."""

from nport_server.tasks.cleanup import (
    cleanup_expired_tunnels,
    find_expired_tunnels,
    run_cleanup,
    run_cleanup_loop,
    start_cleanup_task,
)

__all__ = [
    "cleanup_expired_tunnels",
    "find_expired_tunnels",
    "run_cleanup",
    "run_cleanup_loop",
    "start_cleanup_task",
]
