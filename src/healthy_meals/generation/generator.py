"""Recipe generator: prompt the model, validate its JSON, retry bad output."""

import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from healthy_meals.common.exceptions import GenerationFailedError, GenerationRejectedError
from healthy_meals.generation.llm import LLMClient, LLMError
from healthy_meals.generation.prompts import (
    GENERATION_SYSTEM_PROMPT,
    MODIFICATION_SYSTEM_PROMPT,
    build_generation_prompt,
    build_modification_prompt,
)
from healthy_meals.generation.retry import RetryPolicy
from healthy_meals.recipes.schemas import (
    GenerationRefusal,
    RecipeGenerationRequest,
    RecipeGenerationResponse,
    RecipeModificationRequest,
    RecipeModificationResponse,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class MalformedOutputError(ValueError):
    """The model answered, but not with the JSON we asked for."""


def parse_model_output(raw: str, response_model: type[ResponseT]) -> ResponseT:
    """Parse a completion into ``response_model``.

    Raises GenerationRejectedError when the model returned a refusal and
    MalformedOutputError when the text is not a valid response.
    """
    match = _JSON_OBJECT.search(raw)
    if match is None:
        raise MalformedOutputError("No JSON object found in model output")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"Model output is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedOutputError("Model output is not a JSON object")

    if data.get("error") is True:
        try:
            refusal = GenerationRefusal.model_validate(data)
        except ValidationError as e:
            raise MalformedOutputError(f"Malformed refusal: {e}") from e
        raise GenerationRejectedError(refusal.message, refusal.suggestions)

    try:
        return response_model.model_validate(data)
    except ValidationError as e:
        raise MalformedOutputError(
            f"Model output failed validation ({e.error_count()} errors)"
        ) from e


class RecipeGenerator:
    """Calls the recipe model under a bounded retry policy.

    Refusals are final and returned to the caller at once; transport failures
    and malformed output are retried until the policy is exhausted.
    """

    def __init__(
        self,
        llm: LLMClient,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.llm = llm
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    async def generate(self, request: RecipeGenerationRequest) -> RecipeGenerationResponse:
        return await self._run(
            GENERATION_SYSTEM_PROMPT,
            build_generation_prompt(request),
            RecipeGenerationResponse,
            "generation",
        )

    async def modify(self, request: RecipeModificationRequest) -> RecipeModificationResponse:
        return await self._run(
            MODIFICATION_SYSTEM_PROMPT,
            build_modification_prompt(request),
            RecipeModificationResponse,
            "modification",
        )

    async def _run(
        self,
        system: str,
        prompt: str,
        response_model: type[ResponseT],
        operation: str,
    ) -> ResponseT:
        policy = self.retry_policy
        last_error: Optional[Exception] = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                raw = await self.llm.complete_json(system, prompt)
                return parse_model_output(raw, response_model)
            except (LLMError, MalformedOutputError) as e:
                last_error = e
                logger.warning(
                    "Recipe %s attempt %d/%d failed: %s",
                    operation, attempt, policy.max_attempts, e,
                    extra={"attempt": attempt},
                )
                if attempt < policy.max_attempts:
                    # Cancellation (client disconnect) propagates out of the sleep.
                    await self._sleep(policy.delay_after(attempt))

        logger.error("Recipe %s failed after %d attempts", operation, policy.max_attempts)
        raise GenerationFailedError() from last_error
