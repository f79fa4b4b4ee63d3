"""Task execution: lifecycle engine, polling and terminal handoff."""

from .engine import (
    CallerKind,
    ExecutionResult,
    ItemSet,
    Phase,
    ResultKind,
    TaskEngine,
    default_selection,
    enumerate_items,
    preview_item,
    run_task,
)
from .exit_code import clamp_exit_code
from .handoff import HandoffBroker, HandoffRequest

__all__ = [
    "CallerKind",
    "ExecutionResult",
    "HandoffBroker",
    "HandoffRequest",
    "ItemSet",
    "Phase",
    "ResultKind",
    "TaskEngine",
    "clamp_exit_code",
    "default_selection",
    "enumerate_items",
    "preview_item",
    "run_task",
]
