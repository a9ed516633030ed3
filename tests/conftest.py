"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("LLM_PROVIDER", "openrouter")
os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import List
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from pagegen.main import app
from pagegen.schemas.generation import (
    ChunkMetadata,
    FactRecord,
    GenerationRequest,
    RetrievedChunk,
)
from tests.fakes import FakeTokenCounter


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def token_counter() -> FakeTokenCounter:
    return FakeTokenCounter()


@pytest.fixture
def generation_request() -> GenerationRequest:
    return GenerationRequest(
        prompt="Create a due diligence report for Acme Corp",
        organization_id="org_1",
        company_id="cmp_1",
        document_ids=["doc_1"],
    )


@pytest.fixture
def sample_chunks() -> List[RetrievedChunk]:
    return [
        RetrievedChunk(
            id="chunk_1",
            content="Acme Corp reported revenue of $10M in 2024.",
            score=0.91,
            metadata=ChunkMetadata(
                document_id="doc_1",
                document_name="CIM.pdf",
                page_number=4,
                organization_id="org_1",
            ),
        ),
        RetrievedChunk(
            id="chunk_2",
            content="EBITDA margin expanded to 22%.",
            score=0.83,
            metadata=ChunkMetadata(
                document_id="doc_1",
                document_name="CIM.pdf",
                page_number=7,
                organization_id="org_1",
            ),
        ),
    ]


@pytest.fixture
def sample_facts() -> List[FactRecord]:
    return [
        FactRecord(
            id="fact_1",
            type="FINANCIAL_METRIC",
            subject="Acme Corp",
            predicate="has headcount",
            object="250",
            confidence=0.95,
            document_id="doc_1",
            document_name="CIM.pdf",
        ),
    ]


@pytest.fixture
def mock_embedding_service() -> AsyncMock:
    service = AsyncMock()
    service.generate_embedding = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return service


@pytest.fixture
def mock_vector_store(sample_chunks) -> AsyncMock:
    store = AsyncMock()
    store.search = AsyncMock(return_value=sample_chunks)
    return store


@pytest.fixture
def mock_fact_store(sample_facts) -> AsyncMock:
    store = AsyncMock()
    store.find_facts = AsyncMock(return_value=sample_facts)
    return store


@pytest.fixture
def two_section_outline() -> dict:
    return {
        "title": "Acme Corp Due Diligence",
        "sections": [
            {"title": "Overview", "description": "Company overview", "blockTypes": ["paragraph"]},
            {"title": "Risks", "description": "Key risks", "blockTypes": ["bulletList"]},
        ],
    }
