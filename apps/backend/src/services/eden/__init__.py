from services.eden.levels import (
    AgentSelection,
    EdenLevel,
    SPECIFIC_CONSULTATION,
    is_build_level,
    normalize_level,
    select_agents,
)
from services.eden.prompts import get_system_prompt_for_level


__all__ = [
    "SPECIFIC_CONSULTATION",
    "AgentSelection",
    "EdenLevel",
    "get_system_prompt_for_level",
    "is_build_level",
    "normalize_level",
    "select_agents",
]
