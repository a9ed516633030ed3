"""
Incremental block streamer.

Turns the text of a streamed JSON array of blocks into complete
``BlockEvent``s as soon as each array element is syntactically whole.

The scanner is a small state machine over characters:

    SEEKING      prose before the array; everything up to the first ``[`` is dropped
    IN_SEQUENCE  between elements at array level; ``{`` opens an element, ``]`` ends
                 the array and returns to SEEKING
    IN_ELEMENT   inside one element; tracks bracket/brace depth with a
                 string/escape sub-state so structural characters inside text
                 never move the depth

When the depth of an element returns to zero the element's substring is
parsed on its own:

- invalid JSON      -> false positive; the element is retained and scanning
                       continues, re-trying at the next top-level close
- JSON, not a block -> the element is consumed and dropped
- a valid block     -> a ``BlockEvent`` is produced and the element consumed

All decisions depend only on characters already seen, so splitting the same
response into different fragments yields the same block sequence.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from pydantic import ValidationError as PydanticValidationError

from pagegen.schemas.events import BlockEvent
from pagegen.schemas.generation import GENERATED_BLOCK_ADAPTER
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)

_OPENERS = "{["
_CLOSERS = "}]"


class ScanPhase(str, Enum):
    SEEKING = "seeking"
    IN_SEQUENCE = "in_sequence"
    IN_ELEMENT = "in_element"


@dataclass
class StreamerState:
    """Transient per-section scanner state."""

    buffer: str = ""
    scan_pos: int = 0
    phase: ScanPhase = ScanPhase.SEEKING
    depth: int = 0
    in_string: bool = False
    escaped: bool = False
    element_start: int = 0
    next_block_index: int = 0


class _Outcome(Enum):
    BLOCK = "block"
    FALSE_POSITIVE = "false_positive"
    INVALID = "invalid"


class IncrementalBlockStreamer:
    """Parses one section's streamed response into block events."""

    def __init__(self, section_index: int, start_block_index: int = 0):
        self.section_index = section_index
        self.state = StreamerState(next_block_index=start_block_index)
        self.blocks_emitted = 0
        self.blocks_dropped = 0

    @property
    def next_block_index(self) -> int:
        return self.state.next_block_index

    def feed(self, fragment: str) -> None:
        """Append a fragment. Parsing happens in ``flush``."""
        if fragment:
            self.state.buffer += fragment

    def flush(self) -> Iterator[BlockEvent]:
        """Yield every block that is complete in the buffer so far."""
        while True:
            event = self._next_event()
            if event is None:
                return
            yield event

    def finish(self) -> Iterator[BlockEvent]:
        """Final flush at end of stream; any unterminated tail is discarded."""
        yield from self.flush()

        tail = self.state.buffer
        if self.state.phase == ScanPhase.IN_ELEMENT and tail.strip():
            LOGGER.debug(
                "Discarding unterminated tail",
                extra={"section_index": self.section_index, "tail_chars": len(tail)},
            )
        self.state.buffer = ""
        self.state.scan_pos = 0
        self.state.element_start = 0
        self.state.phase = ScanPhase.SEEKING
        self.state.depth = 0
        self.state.in_string = False
        self.state.escaped = False

    # ------------------------------------------------------------------
    # Scanner
    # ------------------------------------------------------------------

    def _next_event(self) -> Optional[BlockEvent]:
        st = self.state
        buf = st.buffer
        i = st.scan_pos

        while i < len(buf):
            ch = buf[i]

            if st.phase == ScanPhase.SEEKING:
                if ch == "[":
                    st.phase = ScanPhase.IN_SEQUENCE
                i += 1
                continue

            if st.in_string:
                if st.escaped:
                    st.escaped = False
                elif ch == "\\":
                    st.escaped = True
                elif ch == '"':
                    st.in_string = False
                i += 1
                continue

            if ch == '"':
                st.in_string = True
                i += 1
                continue

            if st.phase == ScanPhase.IN_SEQUENCE:
                if ch == "{":
                    st.phase = ScanPhase.IN_ELEMENT
                    st.depth = 1
                    st.element_start = i
                elif ch == "]":
                    st.phase = ScanPhase.SEEKING
                i += 1
                continue

            # IN_ELEMENT
            if ch in _OPENERS:
                st.depth += 1
            elif ch in _CLOSERS:
                # Depth stays at zero after a false positive until a later close
                st.depth = max(st.depth - 1, 0)
                if st.depth == 0:
                    end = i + 1
                    outcome, event = self._parse_element(buf[st.element_start:end])
                    if outcome is not _Outcome.FALSE_POSITIVE:
                        self._consume(end)
                        if event is not None:
                            return event
                        buf = st.buffer
                        i = st.scan_pos
                        continue
            i += 1

        self._compact(i)
        return None

    def _parse_element(self, candidate: str) -> tuple:
        try:
            data = json.loads(candidate, strict=False)
        except json.JSONDecodeError:
            return _Outcome.FALSE_POSITIVE, None

        try:
            block = GENERATED_BLOCK_ADAPTER.validate_python(data)
        except PydanticValidationError as e:
            self.blocks_dropped += 1
            LOGGER.warning(
                "Dropping element that is not a valid block",
                extra={
                    "section_index": self.section_index,
                    "block_type": data.get("type") if isinstance(data, dict) else None,
                    "errors": e.error_count(),
                },
            )
            return _Outcome.INVALID, None

        event = BlockEvent(
            block=block,
            section_index=self.section_index,
            block_index=self.state.next_block_index,
        )
        self.state.next_block_index += 1
        self.blocks_emitted += 1
        return _Outcome.BLOCK, event

    def _consume(self, end: int) -> None:
        """Drop everything up to ``end`` and return to array level."""
        st = self.state
        st.buffer = st.buffer[end:]
        st.scan_pos = 0
        st.element_start = 0
        st.depth = 0
        st.phase = ScanPhase.IN_SEQUENCE

    def _compact(self, scanned_to: int) -> None:
        """Drop scanned text that can no longer become part of a block."""
        st = self.state
        if st.phase == ScanPhase.IN_ELEMENT:
            st.buffer = st.buffer[st.element_start:]
            st.scan_pos = scanned_to - st.element_start
            st.element_start = 0
        else:
            st.buffer = st.buffer[scanned_to:]
            st.scan_pos = 0
