from services.chat.context import build_context_summary
from services.chat.interfaces import (
    PdfRenderer,
    SqlStepStore,
    SqlTurnStore,
    StepRecord,
    StepStore,
    TurnRecord,
    TurnStore,
)
from services.chat.orchestrator import ConversationOrchestrator, ResolvedRoute


__all__ = [
    "ConversationOrchestrator",
    "PdfRenderer",
    "ResolvedRoute",
    "SqlStepStore",
    "SqlTurnStore",
    "StepRecord",
    "StepStore",
    "TurnRecord",
    "TurnStore",
    "build_context_summary",
]
