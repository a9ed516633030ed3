"""Page generation pipeline: context, outline, streamed sections, citations."""

from pagegen.services.generation.block_streamer import IncrementalBlockStreamer
from pagegen.services.generation.citations import CitationLedger
from pagegen.services.generation.context_assembler import ContextAssembler, GatheredContext
from pagegen.services.generation.orchestrator import PageGenerationOrchestrator
from pagegen.services.generation.outline_planner import OutlinePlanner

__all__ = [
    "CitationLedger",
    "ContextAssembler",
    "GatheredContext",
    "IncrementalBlockStreamer",
    "OutlinePlanner",
    "PageGenerationOrchestrator",
]
