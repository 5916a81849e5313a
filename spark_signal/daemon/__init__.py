from spark_signal.daemon.events import EventBus, Subscription
from spark_signal.daemon.supervisor import (
    CommandResult,
    DaemonSupervisor,
    ManagedProcess,
    ProcessState,
    ProcessStateError,
    SignalCli,
)
from spark_signal.daemon.provisioning import Provisioner, render_qr

__all__ = [
    "EventBus",
    "Subscription",
    "CommandResult",
    "DaemonSupervisor",
    "ManagedProcess",
    "ProcessState",
    "ProcessStateError",
    "SignalCli",
    "Provisioner",
    "render_qr",
]
