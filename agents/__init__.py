"""PydanticAI completion client and prompt text for the daily digest.

SummarizerAgent:
    Requests digest text from an OpenAI-compatible endpoint under a retry
    policy (model fall-through for scheduled passes, same-model backoff for
    manual refreshes). Never raises; returns a Completion.

build_prompt / SYSTEM_INSTRUCTIONS:
    Deterministic prompt assembly and the factual-register system prompt.

Example:
    >>> from agents import SummarizerAgent, build_prompt
    >>> summarizer = SummarizerAgent(config)
    >>> completion = await summarizer.complete(build_prompt(bundle, False, True))
"""

from agents.prompts import SECTION_HEADERS, SYSTEM_INSTRUCTIONS, build_prompt
from agents.summarizer import Completion, SummarizerAgent

__all__ = [
    "Completion",
    "SECTION_HEADERS",
    "SummarizerAgent",
    "SYSTEM_INSTRUCTIONS",
    "build_prompt",
]
