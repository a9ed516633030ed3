"""
Page Generation Orchestrator.

Runs one request through gathering -> outlining -> expanding(0..n-1) -> complete
and yields events as they happen:

    outline
    section_start(i), block / database_created ..., section_complete(i)   per section
    complete

A failure while gathering or outlining yields a single ``error`` event and
nothing else. A failing section is replaced by a fallback callout and the
remaining sections still run. A fact store failure only drops the facts.

Any other unexpected error keeps the same terminal shape: ``error`` before
the outline, otherwise the open section is closed and ``complete`` follows.
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterator, List, Optional

from pagegen.core.exceptions import (
    ContextRetrievalError,
    FactRetrievalError,
    OutlineGenerationError,
    SectionExpansionError,
)
from pagegen.schemas.events import (
    BlockEvent,
    CompleteEvent,
    CompletionMetadata,
    DatabaseCreatedEvent,
    ErrorEvent,
    OutlineEvent,
    OutlineSectionSummary,
    SectionCompleteEvent,
    SectionStartEvent,
)
from pagegen.schemas.generation import (
    CalloutBlock,
    DatabaseBlock,
    GenerationConfig,
    GenerationRequest,
    GenerationTemplate,
    HeadingBlock,
    OutlineSection,
    ParagraphBlock,
    TokenUsage,
)
from pagegen.services.generation.block_streamer import IncrementalBlockStreamer
from pagegen.services.generation.citations import CitationLedger
from pagegen.services.generation.context_assembler import ContextAssembler, GatheredContext
from pagegen.services.generation.outline_planner import OutlinePlanner
from pagegen.services.generation.prompts import (
    PAGE_GENERATION_SYSTEM_PROMPT,
    build_section_prompt,
)
from pagegen.services.interfaces import (
    EmbeddingService,
    FactStore,
    LLMCallOptions,
    LLMClient,
    VectorStore,
)
from pagegen.utils.logging import get_logger
from pagegen.utils.token_counter import TokenCounter

LOGGER = get_logger(__name__)

CANCELLED_MESSAGE = "Generation cancelled"
UNPARSEABLE_SECTION_MESSAGE = "Content could not be parsed from the response."
FALLBACK_EMOJI = "⚠️"


@dataclass
class _RunState:
    """Running totals for one request."""

    usage: TokenUsage = field(default_factory=TokenUsage)
    next_block_index: int = 0
    sections_generated: int = 0
    databases_created: int = 0
    cancelled: bool = False
    stage: str = "gathering"
    outlined: bool = False
    open_section: Optional[int] = None
    open_citation_start: int = 1


class PageGenerationOrchestrator:
    """
    Generates a structured page from a prompt, streaming events as it goes.

    Sections are expanded strictly one after another because each section's
    citation numbering depends on what the previous sections used.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        llm_client: LLMClient,
        fact_store: Optional[FactStore] = None,
        settings=None,
        token_counter: Optional[TokenCounter] = None,
    ):
        if settings is None:
            from pagegen.core.config import settings as app_settings

            settings = app_settings

        self.settings = settings
        self.llm_client = llm_client
        self._token_counter = token_counter
        self.context_assembler = ContextAssembler(
            embedding_service=embedding_service,
            vector_store=vector_store,
            fact_store=fact_store,
            max_context_tokens=settings.max_context_tokens,
            token_counter=token_counter,
        )
        self.outline_planner = OutlinePlanner(llm_client)

    @property
    def token_counter(self) -> TokenCounter:
        if self._token_counter is None:
            self._token_counter = TokenCounter()
        return self._token_counter

    async def generate_page(
        self,
        request: GenerationRequest,
        template: Optional[GenerationTemplate] = None,
        *,
        config: Optional[GenerationConfig] = None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator:
        """
        Generate a page and yield ``GenerationEvent``s in temporal order.

        Args:
            request: The generation request
            template: Template override; defaults to ``request.template``
            config: Per-call options; defaults come from settings
            abort_event: Set to stop after the in-flight section

        Yields:
            GenerationEvent: exactly one terminal ``complete`` or ``error`` last
        """
        config = config or self.settings.generation_config()
        template = template or request.template
        started = time.perf_counter()
        run = _RunState()

        LOGGER.info(
            "Starting page generation",
            extra={
                "organization_id": request.organization_id,
                "template": template.value if template else None,
            },
        )

        try:
            async with contextlib.aclosing(
                self._run_stages(request, template, config, abort_event, run)
            ) as events:
                async for event in events:
                    yield event
        except Exception as e:
            LOGGER.error(
                f"Page generation failed unexpectedly: {e}",
                exc_info=True,
                extra={"stage": run.stage, "open_section": run.open_section},
            )
            if not run.outlined:
                yield ErrorEvent(message=f"Generation failed: {e}", stage=run.stage)
                return
            if run.open_section is not None:
                index, run.open_section = run.open_section, None
                run.sections_generated += 1
                yield SectionCompleteEvent(
                    index=index, citation_start_index=run.open_citation_start
                )

        if run.outlined:
            yield self._complete_event(run, started)

    async def _run_stages(
        self,
        request: GenerationRequest,
        template: Optional[GenerationTemplate],
        config: GenerationConfig,
        abort_event: Optional[asyncio.Event],
        run: _RunState,
    ) -> AsyncIterator:
        # Gathering
        try:
            chunks = await self.context_assembler.retrieve_chunks(request, config)
        except ContextRetrievalError as e:
            LOGGER.error(f"Context gathering failed: {e}", exc_info=True)
            yield ErrorEvent(message=str(e), stage="gathering")
            return

        try:
            facts = await self.context_assembler.retrieve_facts(request, config)
        except FactRetrievalError as e:
            LOGGER.warning(
                f"{e}; continuing without facts",
                extra={"company_id": request.company_id},
            )
            facts = []

        context = self.context_assembler.build_context(request, chunks, facts)

        if _is_aborted(abort_event):
            yield ErrorEvent(message=CANCELLED_MESSAGE, stage="gathering")
            return

        # Outlining
        run.stage = "outlining"
        try:
            plan = await self.outline_planner.plan(
                request.prompt,
                template,
                self.context_assembler.summarize(context.chunks, context.facts),
                config,
                LLMCallOptions(abort_event=abort_event),
            )
        except OutlineGenerationError as e:
            yield ErrorEvent(message=str(e), stage="outlining")
            return

        if _is_aborted(abort_event):
            yield ErrorEvent(message=CANCELLED_MESSAGE, stage="outlining")
            return

        run.usage = run.usage + plan.usage
        outline = plan.outline

        outline_event = OutlineEvent(
            title=outline.title,
            sections=[
                OutlineSectionSummary(
                    title=s.title, description=s.description, block_types=s.block_types
                )
                for s in outline.sections
            ],
        )
        run.outlined = True
        yield outline_event

        # Expanding
        ledger = CitationLedger(context.items)
        for index, section in enumerate(outline.sections):
            if _is_aborted(abort_event):
                run.cancelled = True
                break

            async for event in self._expand_section(
                index, section, context, ledger, config, run, abort_event
            ):
                yield event

            if run.cancelled:
                break

    async def _expand_section(
        self,
        index: int,
        section: OutlineSection,
        context: GatheredContext,
        ledger: CitationLedger,
        config: GenerationConfig,
        run: _RunState,
        abort_event: Optional[asyncio.Event],
    ) -> AsyncIterator:
        """Stream one section; failures become fallback blocks."""
        run.open_section = index
        run.open_citation_start = 1
        yield SectionStartEvent(index=index, title=section.title)

        streamer = IncrementalBlockStreamer(index, run.next_block_index)
        blocks: List = []
        output_parts: List[str] = []
        reported_usage: Optional[TokenUsage] = None
        failure: Optional[Exception] = None
        citation_start = 1
        prompt = ""

        try:
            citation_start = ledger.start_index(index)
            run.open_citation_start = citation_start
            prompt = build_section_prompt(
                section.title,
                section.description,
                section.block_types,
                context.render(citation_start),
                citation_start,
            )
            options = LLMCallOptions(
                system_prompt=PAGE_GENERATION_SYSTEM_PROMPT,
                max_tokens=config.max_tokens_section,
                temperature=config.temperature,
                abort_event=abort_event,
            )

            fragments = self.llm_client.stream_generate(prompt, options)
            try:
                async for fragment in fragments:
                    if fragment.usage is not None:
                        reported_usage = fragment.usage
                    if fragment.text:
                        output_parts.append(fragment.text)
                        streamer.feed(fragment.text)
                        for event in streamer.flush():
                            for out in self._block_events(event, blocks, run):
                                yield out
                    if _is_aborted(abort_event):
                        run.cancelled = True
                        break
            finally:
                await _close_stream(fragments)
        except Exception as e:
            failure = SectionExpansionError(f"Section '{section.title}' failed: {e}", e)
            LOGGER.error(
                str(failure),
                exc_info=True,
                extra={"section_index": index, "blocks_before_failure": len(blocks)},
            )

        for event in streamer.finish():
            for out in self._block_events(event, blocks, run):
                yield out

        run.next_block_index = streamer.next_block_index
        run.usage = run.usage + (
            reported_usage or self._estimate_usage(prompt, "".join(output_parts))
        )

        if failure is not None:
            fallback = [
                CalloutBlock(
                    content=f"This section could not be generated: {failure.original_error}",
                    emoji=FALLBACK_EMOJI,
                )
            ]
        elif not blocks and not run.cancelled:
            LOGGER.warning(
                "Section produced no parseable blocks, using placeholder",
                extra={"section_index": index, "output_chars": sum(map(len, output_parts))},
            )
            fallback = [
                HeadingBlock(level=2, content=section.title),
                ParagraphBlock(content=UNPARSEABLE_SECTION_MESSAGE),
            ]
        else:
            fallback = []

        for block in fallback:
            yield BlockEvent(
                block=block, section_index=index, block_index=run.next_block_index
            )
            run.next_block_index += 1

        citations_used = ledger.record(index, blocks)
        citations = ledger.resolve(index)

        LOGGER.info(
            f"Section {index} complete: {section.title}",
            extra={
                "blocks": len(blocks),
                "dropped": streamer.blocks_dropped,
                "citation_start": citation_start,
                "citations_used": citations_used,
                "failed": failure is not None,
            },
        )

        run.open_section = None
        run.sections_generated += 1
        yield SectionCompleteEvent(
            index=index,
            citation_start_index=citation_start,
            citations_used=citations_used,
            citations=citations,
        )

    def _block_events(self, event: BlockEvent, blocks: List, run: _RunState) -> Iterator:
        """The block event, followed by its database announcement if it has one."""
        blocks.append(event.block)
        yield event
        if isinstance(event.block, DatabaseBlock):
            run.databases_created += 1
            LOGGER.info(
                f"Database block announced: {event.block.database.name}",
                extra={"section_index": event.section_index, "block_index": event.block_index},
            )
            yield DatabaseCreatedEvent(
                name=event.block.database.name,
                section_index=event.section_index,
                block_index=event.block_index,
            )

    def _complete_event(self, run: _RunState, started: float) -> CompleteEvent:
        processing_time_ms = int((time.perf_counter() - started) * 1000)
        LOGGER.info(
            "Page generation complete",
            extra={
                "sections": run.sections_generated,
                "blocks": run.next_block_index,
                "databases": run.databases_created,
                "tokens": run.usage.total_tokens,
                "cancelled": run.cancelled,
                "processing_time_ms": processing_time_ms,
            },
        )
        return CompleteEvent(
            metadata=CompletionMetadata(
                tokens_used=run.usage.total_tokens,
                cost=run.usage.cost,
                sections_generated=run.sections_generated,
                databases_created=run.databases_created,
                processing_time_ms=processing_time_ms,
                cancelled=run.cancelled,
            )
        )

    def _estimate_usage(self, prompt: str, output: str) -> TokenUsage:
        """Usage estimate for streams that report none; zero if counting fails."""
        try:
            prompt_tokens = self.token_counter.count_tokens(
                PAGE_GENERATION_SYSTEM_PROMPT + prompt
            )
            completion_tokens = self.token_counter.count_tokens(output)
        except Exception as e:
            LOGGER.warning(f"Token estimate unavailable, recording zero usage: {e}")
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


async def _close_stream(fragments) -> None:
    """Close the LLM stream if it supports it; plain async iterators do not."""
    aclose = getattr(fragments, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        LOGGER.warning(f"Failed to close LLM stream: {e}")


def _is_aborted(abort_event: Optional[asyncio.Event]) -> bool:
    return abort_event is not None and abort_event.is_set()
