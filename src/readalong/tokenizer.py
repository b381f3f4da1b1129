# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Reference text tokenization.

Splits a document into an ordered list of tokens, keeping separators
(whitespace and punctuation) as their own tokens so that token indices map
one-to-one onto what is displayed. Only word tokens take part in alignment.

Two forms of each word are kept:
1. text - the word exactly as it appears in the document
2. normalized - lowercase, surrounding punctuation stripped, internal
   apostrophes and hyphens removed ("Don't" -> "dont", "co-operate" -> "cooperate")
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Literal

import markdown
from metaphone import doublemetaphone

from .similarity import NO_CODES, PhoneticCodes

logger = logging.getLogger(__name__)

TokenStatus = Literal["pending", "current", "correct", "incorrect", "skipped", "sep"]

PhoneticEncoder = Callable[[str], PhoneticCodes]

# Apostrophes and hyphens (ASCII and typographic) that may appear inside a word
_JOINERS: str = "'’‘`´\\-‐–—−"

_WORD_OR_SEPARATOR = re.compile(
    rf"([^\W\d_]+(?:[{_JOINERS}][^\W\d_]+)*|\d+)|([\W_]+)"
)
_SURROUNDING_PUNCTUATION = re.compile(r"^[\W_]+|[\W_]+$")
_INTERNAL_JOINERS = re.compile(rf"[{_JOINERS}]")
# "under-\nstanding" -> "understanding"
_HYPHENATED_LINE_BREAK = re.compile(r"([^\W\d_])[-–—−]\s*\n\s*([^\W\d_])")
_SENTENCE_END = re.compile(r"[.!?]+|\n\s*\n")

# Block-level tags that end a line of visible text when rendering Markdown
_BLOCK_TAGS: frozenset[str] = frozenset([
    "p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre", "tr",
])


@dataclass
class ReferenceToken:
    """A token of the reference document."""
    index: int
    text: str
    normalized: str = ""
    is_word: bool = False
    status: TokenStatus = "sep"
    phonetic: PhoneticCodes = NO_CODES


@dataclass
class Sentence:
    """A sentence span, as inclusive word-token indices."""
    id: int
    start_index: int
    end_index: int
    preview: str = ""
    word_count: int = field(default=0, compare=False)


def normalize_word(word: str) -> str:
    """Normalize a word for matching.

    Lowercases, strips leading and trailing punctuation and removes
    apostrophes and hyphens inside the word.
    """
    if not word:
        return ""
    stripped: str = _SURROUNDING_PUNCTUATION.sub("", word.lower())
    return _INTERNAL_JOINERS.sub("", stripped)


def encode_phonetic(encoder: PhoneticEncoder | None, word: str) -> PhoneticCodes:
    """Run a phonetic encoder on a word, returning empty codes on failure."""
    if encoder is None or not word:
        return NO_CODES
    try:
        codes = encoder(word)
    except (ValueError, TypeError, KeyError, IndexError) as e:
        logger.warning("Phonetic encoder failed for %r: %s", word, e)
        return NO_CODES
    primary: str = codes[0] if len(codes) > 0 and codes[0] else ""
    secondary: str = codes[1] if len(codes) > 1 and codes[1] else ""
    return (primary, secondary)


def double_metaphone(word: str) -> PhoneticCodes:
    """Double Metaphone (primary, secondary) codes for a word."""
    primary, secondary = doublemetaphone(word)
    return (primary or "", secondary or "")


def join_hyphenated_line_breaks(text: str) -> str:
    """Join words split with a hyphen across a line break."""
    return _HYPHENATED_LINE_BREAK.sub(r"\1\2", text)


def tokenize(text: str, phonetic_encoder: PhoneticEncoder | None = None) -> list[ReferenceToken]:
    """Tokenize text into word and separator tokens.

    Args:
        text: The document text
        phonetic_encoder: Optional callable returning (primary, secondary)
            phonetic codes for a normalized word

    Returns:
        Tokens in document order; word tokens start ``pending``
    """
    tokens: list[ReferenceToken] = []
    if not text:
        return tokens

    for match in _WORD_OR_SEPARATOR.finditer(join_hyphenated_line_breaks(text)):
        word, separator = match.group(1), match.group(2)
        if word is not None:
            normalized: str = normalize_word(word)
            tokens.append(ReferenceToken(
                index=len(tokens),
                text=word,
                normalized=normalized,
                is_word=True,
                status="pending",
                phonetic=encode_phonetic(phonetic_encoder, normalized)
            ))
        elif separator:
            tokens.append(ReferenceToken(index=len(tokens), text=separator))

    return tokens


class _VisibleTextExtractor(HTMLParser):
    """Collect the visible text of rendered Markdown, one block per paragraph."""

    def __init__(self) -> None:
        super().__init__()
        self.parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "br":
            self.parts.append("\n")

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        if tag in _BLOCK_TAGS:
            self.parts.append("\n\n")

    def handle_data(self, data: str) -> None:
        self.parts.append(data)

    def get_text(self) -> str:
        return "".join(self.parts).strip()


def markdown_to_text(text: str) -> str:
    """Render Markdown and return its visible text."""
    rendered_html: str = markdown.markdown(text, extensions=['nl2br', 'sane_lists'])
    extractor = _VisibleTextExtractor()
    extractor.feed(rendered_html)
    return extractor.get_text()


def tokenize_markdown(text: str, phonetic_encoder: PhoneticEncoder | None = None) -> list[ReferenceToken]:
    """Tokenize the visible text of a Markdown document."""
    return tokenize(markdown_to_text(text), phonetic_encoder)


def first_word_index(tokens: list[ReferenceToken]) -> int:
    """Index of the first word token, or -1."""
    return next((t.index for t in tokens if t.is_word), -1)


def next_word_index(tokens: list[ReferenceToken], from_index: int) -> int:
    """Index of the first word token after ``from_index``, or -1."""
    for i in range(max(from_index + 1, 0), len(tokens)):
        if tokens[i].is_word:
            return i
    return -1


def prev_word_index(tokens: list[ReferenceToken], from_index: int) -> int:
    """Index of the last word token before ``from_index``, or -1."""
    for i in range(min(from_index, len(tokens)) - 1, -1, -1):
        if tokens[i].is_word:
            return i
    return -1


def reset_word_statuses(tokens: list[ReferenceToken]) -> None:
    """Set every word token back to ``pending``."""
    for token in tokens:
        if token.is_word:
            token.status = "pending"


def _sentence_preview(tokens: list[ReferenceToken], start: int, end: int) -> str:
    window = tokens[start:min(len(tokens), end + 6)]
    return " ".join([t.text for t in window if t.is_word][:8])


def compute_sentences(tokens: list[ReferenceToken]) -> list[Sentence]:
    """Split the token list into sentences.

    A sentence ends at a separator containing ``.``, ``!`` or ``?``, or a
    blank line. Bounds are inclusive word-token indices.
    """
    sentences: list[Sentence] = []
    start: int = first_word_index(tokens)

    while start >= 0:
        last_word: int = start
        word_count: int = 1
        end_separator: int | None = None

        for j in range(start + 1, len(tokens)):
            token = tokens[j]
            if not token.is_word and _SENTENCE_END.search(token.text):
                end_separator = j
                break
            if token.is_word:
                last_word = j
                word_count += 1

        sentences.append(Sentence(
            id=len(sentences),
            start_index=start,
            end_index=last_word,
            preview=_sentence_preview(tokens, start, last_word),
            word_count=word_count
        ))

        if end_separator is None:
            break
        start = next_word_index(tokens, end_separator)

    return sentences


def find_sentence(sentences: list[Sentence], token_index: int) -> Sentence | None:
    """Return the sentence containing a token index."""
    for sentence in sentences:
        if sentence.start_index <= token_index <= sentence.end_index:
            return sentence
    return None
