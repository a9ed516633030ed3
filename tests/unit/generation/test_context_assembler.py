"""Tests for RAG context assembly."""

from unittest.mock import AsyncMock

import pytest

from pagegen.core.exceptions import ContextRetrievalError, FactRetrievalError
from pagegen.schemas.generation import (
    ChunkMetadata,
    ContextItem,
    FactRecord,
    GenerationConfig,
    GenerationRequest,
    RetrievedChunk,
)
from pagegen.services.generation.context_assembler import (
    NO_CONTEXT_SUMMARY,
    NO_GROUNDING_CONTEXT,
    ContextAssembler,
    render_context_items,
)


@pytest.fixture
def assembler(mock_embedding_service, mock_vector_store, mock_fact_store, token_counter):
    return ContextAssembler(
        embedding_service=mock_embedding_service,
        vector_store=mock_vector_store,
        fact_store=mock_fact_store,
        token_counter=token_counter,
    )


def _chunk(chunk_id, content, score, document_id="doc_1"):
    return RetrievedChunk(
        id=chunk_id,
        content=content,
        score=score,
        metadata=ChunkMetadata(
            document_id=document_id,
            document_name=f"{document_id}.pdf",
            organization_id="org_1",
        ),
    )


@pytest.mark.asyncio
async def test_gather_context_numbers_chunks_then_facts(assembler, generation_request):
    context = await assembler.gather_context(generation_request, GenerationConfig())

    assert len(context.chunks) == 2
    assert len(context.facts) == 1
    assert [item.kind for item in context.items] == ["chunk", "chunk", "fact"]
    assert context.context_text.startswith("[1] Acme Corp reported revenue of $10M in 2024.")
    assert "Source: CIM.pdf (Page 4)" in context.context_text
    assert "[3] FACT: Acme Corp has headcount 250" in context.context_text
    assert "Confidence: 95%" in context.context_text
    assert context.has_grounding


@pytest.mark.asyncio
async def test_single_document_id_filters_search(
    assembler, generation_request, mock_vector_store
):
    await assembler.gather_context(generation_request, GenerationConfig(top_k=5, min_score=0.5))

    vector, scope_id, options = mock_vector_store.search.call_args.args
    assert vector == [0.1, 0.2, 0.3]
    assert scope_id == "org_1"
    assert options.top_k == 5
    assert options.min_score == 0.5
    assert options.document_id == "doc_1"


@pytest.mark.asyncio
async def test_multiple_document_ids_do_not_filter(assembler, mock_vector_store):
    request = GenerationRequest(
        prompt="Compare the two reports",
        organization_id="org_1",
        document_ids=["doc_1", "doc_2"],
    )

    await assembler.gather_context(request, GenerationConfig())

    options = mock_vector_store.search.call_args.args[2]
    assert options.document_id is None


@pytest.mark.asyncio
async def test_zero_chunks_and_facts_yields_no_grounding_marker(
    mock_embedding_service, token_counter, generation_request
):
    vector_store = AsyncMock()
    vector_store.search = AsyncMock(return_value=[])
    fact_store = AsyncMock()
    fact_store.find_facts = AsyncMock(return_value=[])
    assembler = ContextAssembler(
        mock_embedding_service, vector_store, fact_store, token_counter=token_counter
    )

    context = await assembler.gather_context(generation_request, GenerationConfig())

    assert context.context_text == NO_GROUNDING_CONTEXT
    assert not context.has_grounding
    assert assembler.summarize(context.chunks, context.facts) == NO_CONTEXT_SUMMARY


@pytest.mark.asyncio
async def test_embedding_failure_raises(
    mock_vector_store, token_counter, generation_request
):
    embedding_service = AsyncMock()
    embedding_service.generate_embedding = AsyncMock(side_effect=RuntimeError("model down"))
    assembler = ContextAssembler(embedding_service, mock_vector_store, token_counter=token_counter)

    with pytest.raises(ContextRetrievalError, match="embedding"):
        await assembler.gather_context(generation_request, GenerationConfig())


@pytest.mark.asyncio
async def test_vector_store_failure_raises(
    mock_embedding_service, token_counter, generation_request
):
    vector_store = AsyncMock()
    vector_store.search = AsyncMock(side_effect=ConnectionError("db gone"))
    assembler = ContextAssembler(mock_embedding_service, vector_store, token_counter=token_counter)

    with pytest.raises(ContextRetrievalError) as exc_info:
        await assembler.gather_context(generation_request, GenerationConfig())

    assert isinstance(exc_info.value.original_error, ConnectionError)


@pytest.mark.asyncio
async def test_fact_store_failure_raises(
    mock_embedding_service, mock_vector_store, token_counter, generation_request
):
    fact_store = AsyncMock()
    fact_store.find_facts = AsyncMock(side_effect=TimeoutError("slow"))
    assembler = ContextAssembler(
        mock_embedding_service, mock_vector_store, fact_store, token_counter=token_counter
    )

    with pytest.raises(FactRetrievalError) as exc_info:
        await assembler.retrieve_facts(generation_request, GenerationConfig())
    assert isinstance(exc_info.value.original_error, TimeoutError)

    with pytest.raises(FactRetrievalError):
        await assembler.gather_context(generation_request, GenerationConfig())


def test_build_context_from_chunks_only(assembler, generation_request, sample_chunks):
    context = assembler.build_context(generation_request, sample_chunks, [])

    assert [item.source_id for item in context.items] == ["chunk_1", "chunk_2"]
    assert context.facts == []


@pytest.mark.asyncio
async def test_facts_skipped_without_company_or_when_disabled(
    assembler, mock_fact_store
):
    request = GenerationRequest(prompt="Market overview", organization_id="org_1")
    await assembler.gather_context(request, GenerationConfig())

    with_company = GenerationRequest(
        prompt="Market overview", organization_id="org_1", company_id="cmp_1"
    )
    await assembler.gather_context(with_company, GenerationConfig(include_facts=False))

    mock_fact_store.find_facts.assert_not_called()


@pytest.mark.asyncio
async def test_facts_sorted_by_confidence_and_capped(
    mock_embedding_service, mock_vector_store, token_counter, generation_request
):
    facts = [
        FactRecord(id=f"f{i}", type="METRIC", subject="Acme", predicate="metric", object=str(i),
                   confidence=conf)
        for i, conf in enumerate([0.5, 0.9, 0.7])
    ]
    fact_store = AsyncMock()
    fact_store.find_facts = AsyncMock(return_value=facts)
    assembler = ContextAssembler(
        mock_embedding_service, mock_vector_store, fact_store, token_counter=token_counter
    )

    context = await assembler.gather_context(generation_request, GenerationConfig(max_facts=2))

    assert [f.id for f in context.facts] == ["f1", "f2"]
    fact_store.find_facts.assert_awaited_once_with("cmp_1", "org_1", 2)


@pytest.mark.asyncio
async def test_low_scores_and_duplicate_content_removed(
    mock_embedding_service, token_counter, generation_request
):
    vector_store = AsyncMock()
    vector_store.search = AsyncMock(
        return_value=[
            _chunk("a", "Revenue grew 20%.", 0.9),
            _chunk("b", "  revenue   grew 20%. ", 0.8),
            _chunk("c", "Weak match", 0.1),
        ]
    )
    assembler = ContextAssembler(mock_embedding_service, vector_store, token_counter=token_counter)

    context = await assembler.gather_context(
        generation_request, GenerationConfig(include_facts=False)
    )

    assert [c.id for c in context.chunks] == ["a", "b"]
    assert [item.source_id for item in context.items] == ["a"]


@pytest.mark.asyncio
async def test_context_bounded_by_token_budget(
    mock_embedding_service, token_counter, generation_request
):
    vector_store = AsyncMock()
    vector_store.search = AsyncMock(
        return_value=[_chunk(str(i), f"chunk {i} " + "word " * 30, 0.9 - i * 0.01) for i in range(5)]
    )
    assembler = ContextAssembler(
        mock_embedding_service,
        vector_store,
        max_context_tokens=120,
        token_counter=token_counter,
    )

    context = await assembler.gather_context(
        generation_request, GenerationConfig(include_facts=False)
    )

    # Each item costs 32 words + 20 framing tokens
    assert [item.source_id for item in context.items] == ["0", "1"]


def test_render_renumbers_from_start_index(sample_chunks):
    items = [
        ContextItem(kind="chunk", source_id=c.id, text=c.content,
                    document_name=c.metadata.document_name, score=c.score)
        for c in sample_chunks
    ]

    rendered = render_context_items(items, start_index=4)

    assert rendered.startswith("[4] ")
    assert "\n\n---\n\n[5] " in rendered
    assert render_context_items([], start_index=4) == NO_GROUNDING_CONTEXT


def test_summarize_lists_documents(assembler, sample_chunks, sample_facts):
    summary = assembler.summarize(sample_chunks, sample_facts)

    assert "2 document chunks from: CIM.pdf" in summary
    assert "1 verified facts" in summary
