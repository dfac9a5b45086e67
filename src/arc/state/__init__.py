"""Coordination of a running Arc instance.

`SharedState` owns the configuration, the process supervisor and the
tunnel helper and serializes every reload and restart. `ArcRuntime`
runs one instance on top of it: proxy, health loop, file watcher,
signals and ordered shutdown.

Example:
    >>> runtime = ArcRuntime(load_config(Path("arc.toml")))
    >>> anyio.run(runtime.run)
"""

from ._runtime import (
    ArcRuntime,
    Command,
    CommandKind,
    ConfigLoader,
    build_watch_targets,
    instance_name,
)
from ._state import SharedState, StateSnapshot, TunnelLaunch, tunnel_launch

__all__ = [
    "ArcRuntime",
    "Command",
    "CommandKind",
    "ConfigLoader",
    "SharedState",
    "StateSnapshot",
    "TunnelLaunch",
    "build_watch_targets",
    "instance_name",
    "tunnel_launch",
]
