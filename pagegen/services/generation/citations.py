"""
Citation numbering and resolution across sections.

Every section is offered the same context items, numbered from that
section's start index. Start indices advance by the citations each
earlier section actually used, so no number is handed to two sections.
"""

import re
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel

from pagegen.schemas.generation import ContextItem, SourceCitation
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)

CITATION_PATTERN = re.compile(r"\[(\d+)\]")

_EXCERPT_CHARS = 200


def extract_citation_indices(text: str) -> List[int]:
    """Unique citation numbers in ``text``, sorted ascending."""
    if not text:
        return []
    return sorted({int(num) for num in CITATION_PATTERN.findall(text)})


def clean_invalid_citations(text: str, start_index: int, end_index: int) -> str:
    """Remove markers whose number falls outside ``[start_index, end_index]``."""

    def _replace(match: re.Match) -> str:
        number = int(match.group(1))
        return match.group(0) if start_index <= number <= end_index else ""

    return CITATION_PATTERN.sub(_replace, text)


def _iter_strings(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_strings(item)


def find_block_citations(block: BaseModel) -> List[int]:
    """Citation numbers used by a block: inline markers plus its ``citations`` list."""
    data = block.model_dump(exclude={"type", "citations"})
    found = set()
    for text in _iter_strings(data):
        found.update(extract_citation_indices(text))
    for number in getattr(block, "citations", None) or []:
        if number > 0:
            found.add(number)
    return sorted(found)


class CitationLedger:
    """Tracks citation start indices and usage for one generation request."""

    def __init__(self, items: List[ContextItem]):
        self.items = items
        self._used: List[int] = []
        self._markers: Dict[int, List[int]] = {}

    @property
    def sections_recorded(self) -> int:
        return len(self._used)

    def start_index(self, section_index: int) -> int:
        if section_index > len(self._used):
            raise ValueError(
                f"Section {section_index} requested before section {len(self._used)} was recorded"
            )
        return 1 + sum(self._used[:section_index])

    def citations_used(self, section_index: int) -> int:
        return self._used[section_index]

    def record(self, section_index: int, blocks: Iterable[BaseModel]) -> int:
        """Store the citations a finished section used and return its count."""
        if section_index != len(self._used):
            raise ValueError(
                f"Sections must be recorded in order: expected {len(self._used)}, "
                f"got {section_index}"
            )

        markers = set()
        for block in blocks:
            markers.update(find_block_citations(block))

        used = max(markers) if markers else 0
        self._used.append(used)
        self._markers[section_index] = sorted(markers)
        return used

    def resolve(self, section_index: int) -> List[SourceCitation]:
        """Map a recorded section's markers to the context items they cite."""
        start = self.start_index(section_index)
        sources: List[SourceCitation] = []

        for marker in self._markers.get(section_index, []):
            position = marker - start
            if not 0 <= position < len(self.items):
                LOGGER.warning(
                    f"Section cited [{marker}] but it was not in the offered range",
                    extra={
                        "section_index": section_index,
                        "range_start": start,
                        "range_end": start + len(self.items) - 1,
                    },
                )
                continue

            item = self.items[position]
            sources.append(
                SourceCitation(
                    citation_id=marker,
                    kind=item.kind,
                    source_id=item.source_id,
                    document_id=item.document_id,
                    document_name=item.document_name,
                    page_number=item.page_number,
                    excerpt=item.text[:_EXCERPT_CHARS],
                    score=item.score,
                )
            )

        return sources
