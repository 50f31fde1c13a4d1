"""Poll cycle, liveness monitors, recovery policy and host lifecycle.

Public API
----------
* :func:`~orderwatch.orchestrator.scheduler.run_continuous` — default
  runtime entry-point; runs until fatal escalation or ``SIGTERM``.
* :func:`~orderwatch.orchestrator.runner.run_once` — log in, run one order
  check, exit.
* :func:`~orderwatch.orchestrator.runner.build_engine` — component wiring.
* :class:`~orderwatch.orchestrator.engine.Orchestrator` — cycle task,
  backoff and fatal escalation.
* :class:`~orderwatch.orchestrator.poller.OrderPoller` — one order check.
* :class:`~orderwatch.orchestrator.host.ServiceHost` — host lifecycle
  adapter.
* Liveness monitors in :mod:`orderwatch.orchestrator.liveness`.
* :class:`~orderwatch.orchestrator.metrics.LifetimeStats` — cumulative
  counters and the JSON stats file.
"""

from orderwatch.orchestrator.engine import Orchestrator, restart_delay
from orderwatch.orchestrator.host import MessageKind, ServiceHost
from orderwatch.orchestrator.liveness import (
    HealthProbeMonitor,
    HeartbeatMonitor,
    KeepAliveMonitor,
    LivenessMonitor,
    LivenessSignals,
    LivenessSupervisor,
    NullWakeHinter,
    WakeHinter,
    WakeHintMonitor,
    WatchdogMonitor,
)
from orderwatch.orchestrator.metrics import LifetimeStats, write_stats_file
from orderwatch.orchestrator.poller import OrderPoller, PollResult
from orderwatch.orchestrator.runner import Engine, build_engine, run_once
from orderwatch.orchestrator.scheduler import run_continuous

__all__ = [
    # Entry-points
    "run_continuous",
    "run_once",
    "build_engine",
    "Engine",
    # Engine
    "Orchestrator",
    "restart_delay",
    "OrderPoller",
    "PollResult",
    # Host
    "ServiceHost",
    "MessageKind",
    # Liveness
    "LivenessSignals",
    "LivenessMonitor",
    "LivenessSupervisor",
    "HeartbeatMonitor",
    "WatchdogMonitor",
    "HealthProbeMonitor",
    "KeepAliveMonitor",
    "WakeHintMonitor",
    "WakeHinter",
    "NullWakeHinter",
    # Lifetime metrics
    "LifetimeStats",
    "write_stats_file",
]
