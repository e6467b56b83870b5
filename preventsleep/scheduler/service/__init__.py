"""Scheduler service package.

This package contains the core scheduler service components:
- store.py: YAML persistence of the schedule list
- table.py: The shared, lock-guarded schedule table (add, list, delete)
- timer.py: Evaluator loop driving the power state on a fixed tick
"""
from .store import ScheduleStore
from .table import ScheduleTable
from .timer import EvaluatorLoop, PowerStateDriver

__all__ = ["ScheduleStore", "ScheduleTable", "EvaluatorLoop", "PowerStateDriver"]
