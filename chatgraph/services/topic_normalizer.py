"""
Topic normalization: map free-text labels onto the fixed topic vocabulary.
"""

import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Tuple, Union

# Spellings the label extractor uses to say "nothing applies"
NO_TOPIC_SENTINELS = frozenset({
    'không có tag',
    'không có tags',
    'không có',
    'không',
    'no tag',
    'no tags',
    'none',
    'n/a',
})

QUOTE_CHARS = '"\'`“”‘’«»'
SEPARATORS = (',', '，', '、')


@dataclass(frozen=True)
class NoTopicsFound:
    """The extractor reported that no vocabulary topic applies."""

    @property
    def names(self) -> Tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class Topics:
    """Canonical topic names, deduplicated, in first-seen order. May be empty."""
    names: Tuple[str, ...]


TopicMatch = Union[NoTopicsFound, Topics]


class TopicNormalizer:
    """Matches raw labels case-insensitively against a closed vocabulary."""

    def __init__(self, vocabulary: Iterable[str]):
        self.vocabulary: List[str] = []
        self._canonical = {}
        for term in vocabulary:
            term = term.strip()
            key = _fold(term)
            if term and key not in self._canonical:
                self._canonical[key] = term
                self.vocabulary.append(term)

        if not self.vocabulary:
            raise ValueError('Topic vocabulary must not be empty')

    def classify(self, raw_text: str) -> TopicMatch:
        """
        Normalize raw label text into a tagged result.

        Args:
            raw_text: Label text from the extraction service, possibly malformed

        Returns:
            NoTopicsFound for blank text or a "no tags" sentinel, else Topics
        """
        text = (raw_text or '').strip().strip(QUOTE_CHARS).strip()
        if not text or _fold(text).rstrip('.!') in NO_TOPIC_SENTINELS:
            return NoTopicsFound()

        for separator in SEPARATORS[1:]:
            text = text.replace(separator, SEPARATORS[0])

        names: List[str] = []
        for candidate in text.split(SEPARATORS[0]):
            candidate = candidate.strip().strip(QUOTE_CHARS).strip()
            canonical = self._canonical.get(_fold(candidate))
            if canonical is not None and canonical not in names:
                names.append(canonical)

        return Topics(names=tuple(names))

    def normalize(self, raw_text: str) -> List[str]:
        """Canonical topic names for raw label text; empty when nothing matches."""
        return list(self.classify(raw_text).names)


def _fold(text: str) -> str:
    """Case-insensitive key; NFC first so decomposed Vietnamese diacritics still match."""
    return unicodedata.normalize('NFC', text).casefold()
