"""Tests for citation numbering and resolution."""

import pytest

from pagegen.schemas.generation import (
    BulletListBlock,
    ContextItem,
    DividerBlock,
    HeadingBlock,
    ParagraphBlock,
    TableBlock,
    TableData,
)
from pagegen.services.generation.citations import (
    CitationLedger,
    clean_invalid_citations,
    extract_citation_indices,
    find_block_citations,
)


@pytest.fixture
def items():
    return [
        ContextItem(kind="chunk", source_id="chunk_1", text="Revenue was $10M.",
                    document_id="doc_1", document_name="CIM.pdf", page_number=4, score=0.9),
        ContextItem(kind="chunk", source_id="chunk_2", text="EBITDA margin is 22%.",
                    document_id="doc_1", document_name="CIM.pdf", page_number=7, score=0.8),
        ContextItem(kind="fact", source_id="fact_1", text="Acme has headcount 250",
                    document_name="CIM.pdf", score=0.95),
    ]


def test_extract_citation_indices_unique_and_sorted():
    assert extract_citation_indices("EBITDA [3] and revenue [1]; again [3] and [12].") == [1, 3, 12]
    assert extract_citation_indices("No citations here.") == []
    assert extract_citation_indices("") == []


def test_clean_invalid_citations_removes_out_of_range():
    assert clean_invalid_citations("Fact [1] and [10].", 1, 3) == "Fact [1] and ."
    assert clean_invalid_citations("Fact [4] and [5].", 4, 6) == "Fact [4] and [5]."


def test_find_block_citations_walks_nested_fields():
    table = TableBlock(
        table=TableData(headers=["Metric [2]"], rows=[["Revenue", "$10M [1]"]]),
        citations=[5],
    )
    bullets = BulletListBlock(items=["One [3]", "Two"])

    assert find_block_citations(table) == [1, 2, 5]
    assert find_block_citations(bullets) == [3]
    assert find_block_citations(DividerBlock()) == []


def test_start_indices_advance_by_citations_used(items):
    ledger = CitationLedger(items)

    assert ledger.start_index(0) == 1
    used = ledger.record(0, [ParagraphBlock(content="Revenue [1] and margin [2].")])
    assert used == 2

    assert ledger.start_index(1) == 3
    ledger.record(1, [HeadingBlock(content="No citations")])

    assert ledger.start_index(2) == 3
    ledger.record(2, [ParagraphBlock(content="Headcount [5].")])

    assert ledger.start_index(3) == 8


def test_start_indices_never_overlap(items):
    ledger = CitationLedger(items)
    sections = [
        [ParagraphBlock(content="A [1] [2]")],
        [ParagraphBlock(content="B [3]")],
        [],
        [ParagraphBlock(content="C [9]")],
    ]

    for index, blocks in enumerate(sections):
        start = ledger.start_index(index)
        used = ledger.record(index, blocks)
        assert ledger.start_index(index + 1) >= start + used


def test_record_out_of_order_raises(items):
    ledger = CitationLedger(items)

    with pytest.raises(ValueError):
        ledger.record(1, [])
    with pytest.raises(ValueError):
        ledger.start_index(2)


def test_resolve_maps_markers_relative_to_section_start(items):
    ledger = CitationLedger(items)
    ledger.record(0, [ParagraphBlock(content="Revenue [1].")])
    ledger.record(1, [ParagraphBlock(content="Margin [3] and headcount [4].")])

    first = ledger.resolve(0)
    second = ledger.resolve(1)

    assert [(c.citation_id, c.source_id) for c in first] == [(1, "chunk_1")]
    # Section 1 was offered the items as [2], [3], [4]
    assert [(c.citation_id, c.source_id) for c in second] == [(3, "chunk_2"), (4, "fact_1")]
    assert second[0].page_number == 7
    assert second[1].kind == "fact"


def test_resolve_drops_markers_outside_offered_range(items):
    ledger = CitationLedger(items)
    ledger.record(0, [ParagraphBlock(content="Valid [2], invented [9].")])

    resolved = ledger.resolve(0)

    assert [c.citation_id for c in resolved] == [2]
    assert ledger.citations_used(0) == 9


def test_resolve_with_no_items_returns_nothing():
    ledger = CitationLedger([])
    ledger.record(0, [ParagraphBlock(content="Unsupported [1].")])

    assert ledger.resolve(0) == []
