"""beatkeeper core: mention orchestration and background execution."""

from beatkeeper.core.orchestrator import MentionOrchestrator, MentionOutcome, MentionState
from beatkeeper.core.task_manager import TaskRunner

__all__ = [
    "MentionOrchestrator",
    "MentionOutcome",
    "MentionState",
    "TaskRunner",
]
