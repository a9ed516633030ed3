"""
Prompts for two-phase page generation.

1. Outline: prompt + context summary -> page title and sections
2. Expansion: one section + numbered context -> JSON array of blocks
"""

from typing import List, Optional

from pagegen.schemas.generation import BLOCK_TYPES, GenerationTemplate

PAGE_GENERATION_SYSTEM_PROMPT = f"""
You write structured pages for M&A and investment professionals.
Your output is rendered by a rich text editor as a sequence of content blocks.

Block types and their fields:
- heading: level (1|2|3), content
- paragraph: content (supports **bold**, *italic* and [N] citations)
- bulletList / orderedList: items (string[])
- taskList: tasks ({{ "text": string, "checked": boolean }}[])
- blockquote: content
- callout: content, emoji
- divider: no fields
- codeBlock: content, language
- table: table ({{ "headers": string[], "rows": string[][] }})
- database: database ({{ "name", "columns": {{ "name", "type", "options"? }}[], "entries": object[] }})

Database column types: TEXT, NUMBER, SELECT, MULTI_SELECT, DATE, CHECKBOX, URL, STATUS

Rules:
- Output JSON only. Never wrap output in prose.
- Cite numbered context items inline with [N]. Only cite numbers you were given.
- Do not invent figures when context is missing; say the information is unavailable.
- Allowed "type" values: {", ".join(BLOCK_TYPES)}.
"""

TEMPLATE_HINTS = {
    GenerationTemplate.DD_REPORT: """This is a Due Diligence Report. Cover:
- Executive Summary (key findings, recommendation)
- Company Overview (history, structure, leadership)
- Financial Analysis with a database of financial metrics
- Market & Competition
- Legal & Regulatory
- Risk Assessment with a risk database rating likelihood and impact
- Recommendations & Next Steps""",
    GenerationTemplate.COMPETITOR_ANALYSIS: """This is a Competitor Analysis. Cover:
- Market Overview
- Competitor Profiles
- Comparative Analysis with a database comparing competitors
- SWOT Analysis
- Strategic Implications
- Opportunities & Threats""",
    GenerationTemplate.MARKET_REPORT: """This is a Market Report. Cover:
- Market Overview (size, growth, segments)
- Trends & Drivers
- Key Players with a database of major companies and market share
- Regional Analysis
- Regulatory Environment
- Outlook & Forecasts""",
    GenerationTemplate.COMPANY_OVERVIEW: """This is a Company Overview. Cover:
- Company Profile
- Products & Services
- Financial Performance with a table of key metrics
- Leadership Team with a database of key executives
- Recent Developments
- Strengths & Challenges""",
}


def get_template_hint(template: Optional[GenerationTemplate]) -> str:
    if template is None:
        return ""
    return TEMPLATE_HINTS.get(template, "")


def build_outline_prompt(
    user_prompt: str,
    template: Optional[GenerationTemplate],
    context_summary: str,
) -> str:
    parts = [
        "Plan the outline of a structured document page.",
        f"USER REQUEST: {user_prompt}",
    ]

    template_hint = get_template_hint(template)
    if template_hint:
        parts.append(f"TEMPLATE GUIDANCE:\n{template_hint}")
    if context_summary:
        parts.append(f"AVAILABLE CONTEXT:\n{context_summary}")

    parts.append(
        'Respond with a JSON object: {"title": string, "sections": '
        '[{"title": string, "description": string, "blockTypes": string[]}]}.\n'
        "Include 4-8 sections with a mix of block types. "
        'Put "database" or "table" in blockTypes for data-heavy sections.'
    )
    return "\n\n".join(parts)


def build_section_prompt(
    section_title: str,
    section_description: str,
    block_types: List[str],
    context: str,
    citation_start_index: int,
) -> str:
    data_hint = ""
    if "database" in block_types:
        data_hint += (
            '\nInclude at least one "database" block with a descriptive name, 3-6 typed '
            "columns and 3-10 entries keyed by column name, populated from the context."
        )
    if "table" in block_types:
        data_hint += '\nInclude at least one "table" block with headers and rows.'

    return f"""Expand this section into content blocks.

SECTION: {section_title}
DESCRIPTION: {section_description}
SUGGESTED BLOCK TYPES: {", ".join(block_types) or "any"}

CONTEXT (items are numbered from [{citation_start_index}]; cite them by those numbers):
{context}
{data_hint}

Respond with a JSON array of blocks. Start with a level 2 heading for the section title.
Example:
[
  {{"type": "heading", "level": 2, "content": "{section_title}"}},
  {{"type": "paragraph", "content": "Overview with **bold** text and a citation [{citation_start_index}]."}},
  {{"type": "bulletList", "items": ["Point one", "Point two"]}}
]"""
