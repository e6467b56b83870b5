"""Service modules"""
from .control_service import ScheduleControlService
from .daemon import PreventSleepService
from .listener import ControlListener
from .rpc import RpcDispatcher

__all__ = [
    "ControlListener",
    "PreventSleepService",
    "RpcDispatcher",
    "ScheduleControlService",
]
