"""Incremental scanning and extraction of model output.

Pure, provider-agnostic building blocks shared by the model adapters and the
conversation orchestrator.
"""

from services.streaming.code_artifacts import (
    CodeArtifact,
    contains_artifact_code,
    extract_code_artifacts,
)
from services.streaming.events import Chunk, Signal, StreamEvent, Thinking
from services.streaming.extraction import (
    DeliverablePayload,
    deliverable_filename,
    extract_deliverable,
)
from services.streaming.scanner import (
    GENERATING_NOTICE,
    ScanMode,
    TextScanner,
    VisibleOutput,
    filter_think_tags,
)


__all__ = [
    "GENERATING_NOTICE",
    "Chunk",
    "CodeArtifact",
    "DeliverablePayload",
    "ScanMode",
    "Signal",
    "StreamEvent",
    "TextScanner",
    "Thinking",
    "VisibleOutput",
    "contains_artifact_code",
    "deliverable_filename",
    "extract_code_artifacts",
    "extract_deliverable",
    "filter_think_tags",
]
