from dataclasses import dataclass, replace
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from pagegen.core.exceptions import OutlineGenerationError
from pagegen.schemas.generation import (
    GenerationConfig,
    GenerationTemplate,
    PageOutline,
    TokenUsage,
)
from pagegen.services.generation.prompts import (
    PAGE_GENERATION_SYSTEM_PROMPT,
    build_outline_prompt,
)
from pagegen.services.interfaces import LLMCallOptions, LLMClient
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class OutlinePlan:
    outline: PageOutline
    usage: TokenUsage

    @property
    def tokens_used(self) -> int:
        return self.usage.total_tokens


class OutlinePlanner:
    """
    Produces the section plan with one schema-constrained LLM call.
    No partial outline is ever accepted.
    """

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def plan(
        self,
        prompt: str,
        template: Optional[GenerationTemplate],
        context_summary: str,
        config: GenerationConfig,
        options: Optional[LLMCallOptions] = None,
    ) -> OutlinePlan:
        """
        Generate and validate the page outline.

        Raises:
            OutlineGenerationError: If the LLM call fails or the output does not
                match the outline schema.
        """
        outline_prompt = build_outline_prompt(prompt, template, context_summary)
        call_options = replace(
            options or LLMCallOptions(),
            system_prompt=PAGE_GENERATION_SYSTEM_PROMPT,
            max_tokens=config.max_tokens_outline,
            temperature=config.temperature,
        )

        try:
            result = await self.llm_client.generate_structured(
                outline_prompt, PageOutline.model_json_schema(), call_options
            )
        except Exception as e:
            LOGGER.error(f"Outline generation call failed: {e}", exc_info=True)
            raise OutlineGenerationError(f"Outline generation failed: {e}", e) from e

        try:
            outline = PageOutline.model_validate(result.data)
        except PydanticValidationError as e:
            LOGGER.error(
                "Outline failed schema validation",
                extra={"errors": e.error_count()},
            )
            raise OutlineGenerationError(f"Outline did not match schema: {e}", e) from e

        LOGGER.info(
            f"Outline planned: {outline.title}",
            extra={
                "sections": len(outline.sections),
                "tokens": result.usage.total_tokens,
            },
        )
        return OutlinePlan(outline=outline, usage=result.usage)
