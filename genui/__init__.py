"""Generation pipeline: cached, validated UI generation over pluggable LLM backends."""

from genui.orchestrator import (
    GenerationOrchestrator,
    GenerationRequest,
    GenerationResult,
    GenerationState,
    build_prompt,
)

__all__ = [
    "GenerationOrchestrator",
    "GenerationRequest",
    "GenerationResult",
    "GenerationState",
    "build_prompt",
]
