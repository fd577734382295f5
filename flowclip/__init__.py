"""FlowClip: clipboard content analysis, summarization and research workflows."""

from .catalog import WorkflowCatalog, WorkflowKind
from .config import FlowClipConfig
from .consolidator import SessionConsolidator
from .errors import FlowClipError, NotConfiguredError, NotFoundError
from .models import CaptureContext, ClipboardItem, ComprehensiveAnalysis, Session, SessionSummary, TaskType
from .orchestrator import TaskOrchestrator, TaskOutcome
from .store import SQLiteStore

__all__ = [
    "TaskOrchestrator",
    "TaskOutcome",
    "SessionConsolidator",
    "WorkflowCatalog",
    "WorkflowKind",
    "FlowClipConfig",
    "SQLiteStore",
    "CaptureContext",
    "ClipboardItem",
    "ComprehensiveAnalysis",
    "Session",
    "SessionSummary",
    "TaskType",
    "FlowClipError",
    "NotConfiguredError",
    "NotFoundError",
]
