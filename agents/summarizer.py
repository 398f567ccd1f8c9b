"""Completion client for digest generation.

Wraps a PydanticAI agent over an OpenAI-compatible endpoint (OpenRouter by
default) and runs it under a RetryPolicy. The client never raises: every
outcome comes back as a Completion.

Retry Policies:
    Automated (scheduled passes):
        3 attempts falling through the de-duplicated chain
        [requested model, *fallback models], waiting 1s then 2s.
    Interactive (manual refresh):
        3 attempts on the same model with 2s/4s/8s backoff. HTTP 404 and
        503 are retried, as are network faults and empty replies; any other
        HTTP status fails immediately.

A reply that is empty or starts with "Error:" counts as a failed attempt.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from openai import AsyncOpenAI
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from agents.prompts import SYSTEM_INSTRUCTIONS
from config import Config
from retry import RetryExhausted, RetryPolicy, execute_with_policy, fallback_chain

logger = logging.getLogger(__name__)

AUTOMATED_DELAYS = (1.0, 2.0)
INTERACTIVE_DELAYS = (2.0, 4.0, 8.0)
RETRYABLE_HTTP_STATUSES = frozenset({404, 503})
MAX_ATTEMPTS = 3

# (model, prompt, system_instructions) -> reply text
AgentRunner = Callable[[str, str, str], Awaitable[str]]


@dataclass
class Completion:
    """Result of one completion request.

    Attributes:
        ok: True if an acceptable reply was produced
        text: Reply text (empty on failure)
        model: Model that produced the reply (or the last model tried)
        attempts: Number of attempts made
        error: Failure description when ok is False
    """

    ok: bool
    text: str = ""
    model: str | None = None
    attempts: int = 0
    error: str | None = None


def is_usable_reply(text: str | None) -> bool:
    """Empty and 'Error:'-prefixed replies are failed attempts."""
    if not text or not text.strip():
        return False
    return not text.lstrip().startswith("Error:")


def is_retryable_interactive(exc: BaseException) -> bool:
    """Interactive path: retry non-HTTP faults and HTTP 404/503 only."""
    if isinstance(exc, ModelHTTPError):
        return exc.status_code in RETRYABLE_HTTP_STATUSES
    return True


def automated_policy(models: Sequence[str]) -> RetryPolicy:
    """Fall through the model chain, one attempt per model."""
    return RetryPolicy(
        max_attempts=MAX_ATTEMPTS,
        delays=AUTOMATED_DELAYS,
        candidates=tuple(models),
    )


def interactive_policy(model: str) -> RetryPolicy:
    """Retry the same model with exponential backoff."""
    return RetryPolicy(
        max_attempts=MAX_ATTEMPTS,
        delays=INTERACTIVE_DELAYS,
        candidates=(model,),
        retry_on=is_retryable_interactive,
    )


class SummarizerAgent:
    """Requests digest text from the completion endpoint.

    Agents are created lazily per (model, system instructions) pair and
    share one AsyncOpenAI client. Tests pass a runner to bypass the network.

    Example:
        >>> summarizer = SummarizerAgent(config)
        >>> completion = await summarizer.complete(prompt)
        >>> if completion.ok:
        ...     sections = parse_sections(completion.text)
    """

    def __init__(
        self,
        config: Config,
        runner: AgentRunner | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._runner = runner or self._run_agent
        self._sleep = sleep
        self._client: AsyncOpenAI | None = None
        self._agents: dict[tuple[str, str], Agent] = {}

    @property
    def model_chain(self) -> tuple[str, ...]:
        """Configured model followed by de-duplicated fallbacks."""
        return fallback_chain(self.config.summary_model, self.config.fallback_models)

    def automated_policy(self) -> RetryPolicy:
        return automated_policy(self.model_chain)

    def interactive_policy(self) -> RetryPolicy:
        return interactive_policy(self.config.summary_model)

    def _get_agent(self, model: str, system_instructions: str) -> Agent:
        key = (model, system_instructions)
        if key not in self._agents:
            if self._client is None:
                self._client = AsyncOpenAI(
                    base_url=self.config.llm_base_url,
                    api_key=self.config.llm_api_key,
                )
            self._agents[key] = Agent(
                OpenAIModel(model_name=model, provider=OpenAIProvider(openai_client=self._client)),
                output_type=str,
                system_prompt=system_instructions,
            )
        return self._agents[key]

    async def _run_agent(self, model: str, prompt: str, system_instructions: str) -> str:
        agent = self._get_agent(model, system_instructions)
        result = await agent.run(prompt, model_settings={"max_tokens": self.config.max_tokens})
        usage = result.usage()
        logger.debug(
            "Completion usage | model=%s input_tokens=%s output_tokens=%s",
            model, usage.input_tokens, usage.output_tokens,
        )
        return result.output

    async def complete(
        self,
        prompt: str,
        system_instructions: str = SYSTEM_INSTRUCTIONS,
        models: Sequence[str] | None = None,
        policy: RetryPolicy | None = None,
    ) -> Completion:
        """Request a completion under a retry policy.

        Args:
            prompt: User message text
            system_instructions: System prompt (factual-register contract)
            models: Model preference order; overrides the policy's candidates
            policy: Retry policy (defaults to the automated fall-through)

        Returns:
            Completion; ok is False once every attempt has failed
        """
        policy = policy or self.automated_policy()
        if models:
            policy = dataclasses.replace(policy, candidates=tuple(models))
        tried: list[str] = []

        async def attempt(model: str) -> str:
            tried.append(model)
            return await self._runner(model, prompt, system_instructions)

        try:
            text = await execute_with_policy(
                attempt,
                policy,
                accept=is_usable_reply,
                sleep=self._sleep,
                label="completion",
            )
        except RetryExhausted as e:
            logger.error(
                "Completion failed | attempts=%d models=%s error=%s",
                e.attempts, ",".join(dict.fromkeys(tried)), e.last_error,
            )
            return Completion(
                ok=False,
                model=tried[-1] if tried else None,
                attempts=e.attempts,
                error=str(e.last_error) if e.last_error else str(e),
            )

        logger.info("Completion received | model=%s attempts=%d chars=%d", tried[-1], len(tried), len(text))
        return Completion(ok=True, text=text.strip(), model=tried[-1], attempts=len(tried))
