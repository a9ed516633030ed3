"""
Page Generation Schema Definitions

Pydantic models for the page generation pipeline:
- Request and per-call configuration
- Retrieval grounding (chunks, facts, context items)
- Outline (planner output)
- Generated blocks (the LLM's block format)
- Usage accounting and resolved citations
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)


# Request & Configuration

class GenerationTemplate(str, Enum):
    """Predefined page templates."""

    DD_REPORT = "dd-report"
    COMPETITOR_ANALYSIS = "competitor-analysis"
    MARKET_REPORT = "market-report"
    COMPANY_OVERVIEW = "company-overview"
    CUSTOM = "custom"


class GenerationRequest(BaseModel):
    """A request to generate one page."""

    prompt: str = Field(min_length=1, description="User's description of the page")
    organization_id: str = Field(description="Organization scope for retrieval")
    company_id: str | None = Field(default=None, description="Enables fact lookup")
    deal_id: str | None = Field(default=None)
    document_ids: list[str] = Field(
        default_factory=list,
        description="Restricts retrieval when exactly one document is named",
    )
    template: GenerationTemplate | None = Field(default=None)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be blank")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "prompt": "Create a due diligence report for Acme Corp",
                "organization_id": "org_123",
                "company_id": "cmp_456",
                "deal_id": None,
                "document_ids": ["doc_789"],
                "template": "dd-report",
            }
        }


class GenerationConfig(BaseModel):
    """Per-call generation options. The option set is closed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    top_k: int = Field(default=15, ge=1, le=100)
    min_score: float = Field(default=0.4, ge=0.0, le=1.0)
    max_tokens_outline: int = Field(default=1000, ge=1)
    max_tokens_section: int = Field(default=4000, ge=1)
    temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    include_facts: bool = True
    max_facts: int = Field(default=30, ge=0)


# Retrieval Models

class ChunkMetadata(BaseModel):
    """Provenance for a retrieved chunk."""

    document_id: str
    document_name: str
    page_number: int | None = None
    organization_id: str


class RetrievedChunk(BaseModel):
    """A scored fragment of document text returned by the vector store."""

    id: str
    content: str
    score: float = Field(ge=0.0, le=1.0, description="Relevance score")
    metadata: ChunkMetadata


class FactRecord(BaseModel):
    """A (subject, predicate, object) fact extracted from a document."""

    id: str
    type: str
    subject: str
    predicate: str
    object: str
    confidence: float = Field(ge=0.0, le=1.0)
    source_text: str | None = None
    document_id: str | None = None
    document_name: str | None = None

    @property
    def triple(self) -> str:
        return f"{self.subject} {self.predicate} {self.object}"


class ContextItem(BaseModel):
    """One numbered grounding item offered to the LLM (a chunk or a fact)."""

    kind: Literal["chunk", "fact"]
    source_id: str
    text: str
    document_id: str | None = None
    document_name: str | None = None
    page_number: int | None = None
    score: float = Field(ge=0.0, le=1.0, description="Relevance or confidence")


# Outline Models

class OutlineSection(BaseModel):
    """One planned section. ``block_types`` are hints, not a contract."""

    title: str
    description: str
    block_types: list[str] = Field(default_factory=list, alias="blockTypes")

    model_config = ConfigDict(populate_by_name=True)


class PageOutline(BaseModel):
    """Outline schema the planner's LLM call must satisfy."""

    title: str
    sections: list[OutlineSection] = Field(min_length=1)


# Generated Block Models

def _scalar_to_text(value: Any) -> Any:
    """Render JSON scalars (numbers, booleans, null) as display text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


TextValue = Annotated[str, BeforeValidator(_scalar_to_text)]


class _BlockBase(BaseModel):
    citations: list[int] | None = Field(
        default=None, description="Citation numbers the LLM attached to this block"
    )


class HeadingBlock(_BlockBase):
    type: Literal["heading"] = "heading"
    level: Literal[1, 2, 3] = 2
    content: str = ""


class ParagraphBlock(_BlockBase):
    type: Literal["paragraph"] = "paragraph"
    content: str = ""


class BulletListBlock(_BlockBase):
    type: Literal["bulletList"] = "bulletList"
    items: list[TextValue] = Field(default_factory=list)


class OrderedListBlock(_BlockBase):
    type: Literal["orderedList"] = "orderedList"
    items: list[TextValue] = Field(default_factory=list)


class TaskItem(BaseModel):
    text: TextValue
    checked: bool = False


class TaskListBlock(_BlockBase):
    type: Literal["taskList"] = "taskList"
    tasks: list[TaskItem] = Field(default_factory=list)


class BlockquoteBlock(_BlockBase):
    type: Literal["blockquote"] = "blockquote"
    content: str = ""


class CalloutBlock(_BlockBase):
    type: Literal["callout"] = "callout"
    content: str = ""
    emoji: str | None = None


class DividerBlock(_BlockBase):
    type: Literal["divider"] = "divider"


class CodeBlock(_BlockBase):
    type: Literal["codeBlock"] = "codeBlock"
    content: str = ""
    language: str | None = None


class TableData(BaseModel):
    headers: list[TextValue] = Field(default_factory=list)
    rows: list[list[TextValue]] = Field(default_factory=list)


class TableBlock(_BlockBase):
    type: Literal["table"] = "table"
    table: TableData


class DatabaseColumnSpec(BaseModel):
    name: str
    type: Literal[
        "TEXT", "NUMBER", "SELECT", "MULTI_SELECT", "DATE", "CHECKBOX", "URL", "STATUS"
    ] = "TEXT"
    options: list[str] | None = None


class DatabaseSpec(BaseModel):
    """Spec for a tabular entity the external materializer will create."""

    name: str
    columns: list[DatabaseColumnSpec] = Field(default_factory=list)
    entries: list[dict[str, Any]] = Field(default_factory=list)


class DatabaseBlock(_BlockBase):
    type: Literal["database"] = "database"
    database: DatabaseSpec


GeneratedBlock = Annotated[
    Union[
        HeadingBlock,
        ParagraphBlock,
        BulletListBlock,
        OrderedListBlock,
        TaskListBlock,
        BlockquoteBlock,
        CalloutBlock,
        DividerBlock,
        CodeBlock,
        TableBlock,
        DatabaseBlock,
    ],
    Field(discriminator="type"),
]

GENERATED_BLOCK_ADAPTER: TypeAdapter = TypeAdapter(GeneratedBlock)

BLOCK_TYPES = (
    "heading",
    "paragraph",
    "bulletList",
    "orderedList",
    "taskList",
    "blockquote",
    "callout",
    "divider",
    "codeBlock",
    "table",
    "database",
)


# Usage & Citation Models

class TokenUsage(BaseModel):
    """Token and cost usage reported for one LLM call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cost=self.cost + other.cost,
        )


class SourceCitation(BaseModel):
    """A citation marker resolved to the context item it points at."""

    citation_id: int = Field(description="Marker number as written in the text")
    kind: Literal["chunk", "fact"]
    source_id: str
    document_id: str | None = None
    document_name: str | None = None
    page_number: int | None = None
    excerpt: str = Field(description="Truncated source text for display")
    score: float
