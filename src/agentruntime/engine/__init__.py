"""Agent runtime engine - task store, attempt loop, diagnosis and revert."""

from agentruntime.engine.core import ExecutionEngine, is_code_task, select_tools
from agentruntime.engine.diagnosis import (
    DiagnosisService,
    ErrorDiagnosis,
    HeuristicDiagnosisService,
    LlmDiagnosisService,
    classify_error,
    suggest_fix,
)
from agentruntime.engine.revert import RevertService
from agentruntime.engine.store import TaskStore

__all__ = [
    "DiagnosisService",
    "ErrorDiagnosis",
    "ExecutionEngine",
    "HeuristicDiagnosisService",
    "LlmDiagnosisService",
    "RevertService",
    "TaskStore",
    "classify_error",
    "is_code_task",
    "select_tools",
    "suggest_fix",
]
