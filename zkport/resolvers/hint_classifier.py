"""Proven-vs-hint classification of guest reads.

Used when the target separates proven input from untrusted hint input and
the source platform does not. The rule is deliberately simple and always
needs caller confirmation:

- a read whose value is bound to a local and later committed, with no
  assertion on it in between, is proven input;
- a bound read that is asserted on, or never committed, is hint input;
- a read that is not bound to a local is proven input.
"""

import re
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from ..analyzers import lexer
from ..core.logger import LoggerMixin
from ..core.models import Construct, ConstructKind, Side

_ASSERT_RE = re.compile(r"\b(?:debug_)?assert(?:_eq|_ne)?\s*!\s*\(")
_COMMIT_KINDS = (ConstructKind.STRUCTURED_COMMIT, ConstructKind.RAW_COMMIT)


class Channel(Enum):
    PROVEN = "proven"
    HINT = "hint"


class HintClassifier(LoggerMixin):
    """Splits guest structured reads between the proven and hint channels."""

    def classify(self, guest_source: str, constructs: Sequence[Construct]) -> Dict[int, Channel]:
        """Classify every guest structured read.

        Args:
            guest_source: Full guest source text.
            constructs: Plan constructs in plan order; indices in the result
                refer to positions in this sequence.

        Returns:
            Mapping of construct index to channel for guest structured reads.
        """
        masked = lexer.mask_source(guest_source, Side.GUEST.value)
        asserts = self._assertions(masked, guest_source)
        commits = [
            c for c in constructs
            if c.side is Side.GUEST and c.kind in _COMMIT_KINDS
        ]

        result: Dict[int, Channel] = {}
        for index, construct in enumerate(constructs):
            if construct.side is not Side.GUEST or construct.kind is not ConstructKind.STRUCTURED_READ:
                continue
            result[index] = self._channel(construct, commits, asserts)
            self.logger.debug(
                f"guest read #{index} ({construct.binding or 'unbound'}) classified as {result[index].value}"
            )
        return result

    def _assertions(self, masked: str, text: str) -> List[Tuple[int, str]]:
        found = []
        for match in _ASSERT_RE.finditer(masked):
            close = lexer.find_closing(masked, match.end() - 1, text, Side.GUEST.value)
            found.append((match.start(), text[match.end():close]))
        return found

    def _channel(self, read: Construct, commits: List[Construct], asserts: List[Tuple[int, str]]) -> Channel:
        name = read.binding
        if not name:
            return Channel.PROVEN

        mention = re.compile(rf"(?<![\w.]){re.escape(name)}\b")
        read_end = read.source_span.end

        for commit in commits:
            if commit.source_span.start < read_end:
                continue
            if not any(mention.search(arg) for arg in commit.args):
                continue
            checked = any(
                read_end <= position < commit.source_span.start and mention.search(body)
                for position, body in asserts
            )
            return Channel.HINT if checked else Channel.PROVEN

        return Channel.HINT
