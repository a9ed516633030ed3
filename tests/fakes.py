"""Test doubles shared across test modules."""

from typing import Any, List, Optional

from pagegen.schemas.generation import TokenUsage
from pagegen.services.interfaces import StreamFragment, StructuredResult


class FakeTokenCounter:
    """Counts whitespace-separated words; avoids loading tiktoken encodings."""

    def count_tokens(self, text: str) -> int:
        return len(text.split()) if text else 0


class ScriptedLLMClient:
    """LLM client that replays scripted responses.

    ``sections`` holds one script per streaming call. A script is either an
    exception (raised when the stream starts) or a list of items: strings and
    ``StreamFragment``s are yielded, exceptions are raised mid-stream and
    callables are invoked (e.g. to set an abort event).
    """

    def __init__(
        self,
        outline: Any = None,
        sections: Optional[List[Any]] = None,
        outline_usage: Optional[TokenUsage] = None,
    ):
        self.outline = outline
        self.sections = list(sections or [])
        self.outline_usage = outline_usage or TokenUsage(
            prompt_tokens=80, completion_tokens=20, total_tokens=100, cost=0.001
        )
        self.structured_calls = []
        self.stream_calls = []

    async def generate_structured(self, prompt, schema, options):
        self.structured_calls.append((prompt, schema, options))
        if isinstance(self.outline, Exception):
            raise self.outline
        return StructuredResult(data=self.outline, usage=self.outline_usage)

    async def stream_generate(self, prompt, options):
        index = len(self.stream_calls)
        self.stream_calls.append((prompt, options))
        script = self.sections[index] if index < len(self.sections) else []
        if isinstance(script, Exception):
            raise script

        for item in script:
            if isinstance(item, Exception):
                raise item
            if callable(item):
                item()
                continue
            if isinstance(item, StreamFragment):
                yield item
            else:
                yield StreamFragment(text=item)


def split_into(text: str, cut_points: List[int]) -> List[str]:
    """Split ``text`` at the given offsets."""
    pieces = []
    previous = 0
    for cut in sorted(cut_points):
        pieces.append(text[previous:cut])
        previous = cut
    pieces.append(text[previous:])
    return [p for p in pieces if p]
