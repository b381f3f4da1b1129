# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Online beam-search alignment of spoken words against a reference text.

The aligner keeps a small beam of hypotheses about how the words heard so far
line up with the text after the committed position. Each spoken word expands
every hypothesis against the next few word tokens (the lookahead window):

- match: the word is close enough to a token (correct)
- substitution: the word was read as something else (incorrect)
- deletion: a token was passed over without being read (skipped)
- insertion: the word is extra, e.g. a filler like "um" (no token touched)

Tokens passed over on the way to a lookahead candidate are marked skipped
when the path commits. The beam keeps the cheapest candidates without merging
paths that reach the same position. Once a phrase has been folded in, the
best hypothesis is committed if it is unambiguous or clearly ahead; otherwise
the beam waits for more words.

Positions inside the beam are word ordinals (indices into the word tokens
only). Everything exposed to callers uses full token indices.
"""

import logging
import math
from bisect import bisect_left
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Literal

from .hooks import notify
from .similarity import NO_CODES, PhoneticCodes, combined_similarity
from .tokenizer import PhoneticEncoder, ReferenceToken, TokenStatus, encode_phonetic, normalize_word

logger = logging.getLogger(__name__)

StepKind = Literal["match", "substitution", "deletion", "insertion"]

CommitCallback = Callable[[int, TokenStatus, str], None]

FILLER_WORDS: frozenset[str] = frozenset(["uh", "um", "er", "ah", "eh", "mm", "hmm"])

DELETION_COST: float = 0.5
INSERTION_COST: float = 0.3
FILLER_INSERTION_COST: float = 0.1

_STEP_STATUS: dict[str, TokenStatus] = {
    "match": "correct",
    "substitution": "incorrect",
    "deletion": "skipped",
}


@dataclass(frozen=True)
class AlignmentStep:
    """One step of an alignment path."""
    kind: StepKind
    token_index: int | None  # None for insertions
    spoken: str = ""
    expected: str = ""
    cost: float = 0.0


@dataclass
class AlignmentHypothesis:
    """A candidate alignment of the words heard since the last commit."""
    text_position: int  # word ordinal reached
    spoken_position: int = 0  # spoken words consumed
    cost: float = 0.0
    path: tuple[AlignmentStep, ...] = field(default_factory=tuple)

    def extend(
        self,
        steps: list[AlignmentStep],
        text_position: int,
        spoken_advance: int = 1
    ) -> 'AlignmentHypothesis':
        """Return a successor hypothesis with the given steps appended."""
        return AlignmentHypothesis(
            text_position=text_position,
            spoken_position=self.spoken_position + spoken_advance,
            cost=self.cost + sum(step.cost for step in steps),
            path=self.path + tuple(steps)
        )

    def sort_key(self) -> float:
        """Order by cost."""
        # Rounded so float noise doesn't decide between equal-cost paths
        return round(self.cost, 9)


def _is_finite_number(value: object) -> bool:
    return (isinstance(value, (int, float))
            and not isinstance(value, bool)
            and math.isfinite(value))


@dataclass
class AlignerSettings:
    """Tunable aligner parameters.

    Bounds (values outside are clamped, non-finite values ignored):
        beam_width: 2..10, floored to an int
        match_threshold: 0..1, minimum similarity for a match
        advance_margin: 0..1, cost margin within which hypotheses compete
        lookahead_window: 5..20 word tokens, floored to an int
        phonetic_enabled: bool only
        phonetic_weight: 0..1, weight of phonetic vs textual similarity
    """
    beam_width: int = 4
    match_threshold: float = 0.8
    advance_margin: float = 0.1
    lookahead_window: int = 10
    phonetic_enabled: bool = True
    phonetic_weight: float = 0.6

    def update(
        self,
        beam_width: object = None,
        match_threshold: object = None,
        advance_margin: object = None,
        lookahead_window: object = None,
        phonetic_enabled: object = None,
        phonetic_weight: object = None
    ) -> None:
        """Apply any valid values, clamping them to their bounds."""
        if _is_finite_number(beam_width):
            self.beam_width = max(2, min(10, math.floor(beam_width)))  # type: ignore[arg-type]
        if _is_finite_number(match_threshold):
            self.match_threshold = max(0.0, min(1.0, float(match_threshold)))  # type: ignore[arg-type]
        if _is_finite_number(advance_margin):
            self.advance_margin = max(0.0, min(1.0, float(advance_margin)))  # type: ignore[arg-type]
        if _is_finite_number(lookahead_window):
            self.lookahead_window = max(5, min(20, math.floor(lookahead_window)))  # type: ignore[arg-type]
        if isinstance(phonetic_enabled, bool):
            self.phonetic_enabled = phonetic_enabled
        if _is_finite_number(phonetic_weight):
            self.phonetic_weight = max(0.0, min(1.0, float(phonetic_weight)))  # type: ignore[arg-type]


class BeamAligner:
    """
    Aligns a stream of spoken phrases against reference tokens.

    The aligner owns the beam and the committed pointer. Token statuses are
    mutated in place; hooks receive status, annotation and pointer
    notifications, and ``on_commit`` is told about every token a commit marks.
    """

    tokens: list[ReferenceToken]
    settings: AlignerSettings
    word_positions: list[int]
    committed_position: int
    beam: list[AlignmentHypothesis]

    def __init__(
        self,
        tokens: list[ReferenceToken],
        hooks: object | None = None,
        settings: AlignerSettings | None = None,
        phonetic_encoder: PhoneticEncoder | None = None,
        on_commit: CommitCallback | None = None
    ) -> None:
        """
        Initialize the aligner.

        Args:
            tokens: Reference tokens (referenced, not copied)
            hooks: Object implementing any of the SessionHooks events
            settings: Initial settings (clamped like configure())
            phonetic_encoder: Produces phonetic codes for spoken words
            on_commit: Called as (token_index, status, heard) per marked token
        """
        self.tokens = tokens
        self.hooks = hooks
        self.phonetic_encoder = phonetic_encoder
        self.on_commit = on_commit

        self.settings = AlignerSettings()
        if settings is not None:
            self.settings.update(**asdict(settings))

        self.word_positions = [i for i, t in enumerate(tokens) if t.is_word]
        self.committed_position = 0
        self.beam = []
        self._reset_beam()

    @property
    def pointer(self) -> int:
        """Token index of the next word to read (len(tokens) when done)."""
        return self._to_token_index(self.committed_position)

    @property
    def word_count(self) -> int:
        """Number of word tokens in the reference."""
        return len(self.word_positions)

    def _to_token_index(self, ordinal: int) -> int:
        if ordinal < len(self.word_positions):
            return self.word_positions[ordinal]
        return len(self.tokens)

    def _to_ordinal(self, token_index: int) -> int:
        return bisect_left(self.word_positions, token_index)

    def _reset_beam(self) -> None:
        self.beam = [AlignmentHypothesis(text_position=self.committed_position)]

    def configure(self, **options: object) -> None:
        """Update settings; see AlignerSettings for bounds.

        Unknown option names are ignored.
        """
        known = {k: v for k, v in options.items() if k in AlignerSettings.__dataclass_fields__}
        self.settings.update(**known)

    def set_pointer(self, token_index: int) -> None:
        """Force the committed position and restart the beam there."""
        if not _is_finite_number(token_index):
            return
        token_index = max(0, min(int(token_index), len(self.tokens)))
        self.committed_position = self._to_ordinal(token_index)
        self._reset_beam()
        notify(self.hooks, "pointer_moved", self.pointer)

    def consume_phrase(self, phrase: str) -> int:
        """
        Feed a recognized phrase into the aligner.

        Words are normalized and folded into the beam one at a time in the
        order they were spoken, then the commit decision runs once.

        Args:
            phrase: Final recognizer text

        Returns:
            Number of normalized words consumed (0 for empty input)
        """
        if not isinstance(phrase, str) or not phrase.strip():
            return 0

        words: list[str] = [w for w in (normalize_word(p) for p in phrase.split()) if w]
        if not words:
            return 0

        for word in words:
            self._expand(word)
        self._check_commit()

        return len(words)

    def _expand(self, word: str) -> None:
        """Expand every hypothesis in the beam with one spoken word."""
        codes: PhoneticCodes = NO_CODES
        if self.settings.phonetic_enabled:
            codes = encode_phonetic(self.phonetic_encoder, word)

        candidates: list[AlignmentHypothesis] = []
        for hypothesis in self.beam:
            candidates.extend(self._successors(hypothesis, word, codes))

        self.beam = self._prune(candidates)
        logger.debug(
            "Expanded %r: %d candidates, best=%s",
            word, len(candidates),
            (self.beam[0].text_position, round(self.beam[0].cost, 3)) if self.beam else None
        )

    def _successors(
        self,
        hypothesis: AlignmentHypothesis,
        word: str,
        codes: PhoneticCodes
    ) -> list[AlignmentHypothesis]:
        """Generate successor hypotheses for one spoken word.

        Every lookahead candidate yields a match (when similar enough), a
        substitution, a deletion of the candidate and an insertion that
        stops in front of it. Words passed on the way to a candidate ride
        along as free deletions so a commit marks them skipped.
        """
        settings: AlignerSettings = self.settings
        successors: list[AlignmentHypothesis] = []
        insertion_cost: float = FILLER_INSERTION_COST if word in FILLER_WORDS else INSERTION_COST
        passed: list[AlignmentStep] = []

        end: int = min(hypothesis.text_position + settings.lookahead_window, len(self.word_positions))
        for ordinal in range(hypothesis.text_position, end):
            token: ReferenceToken = self.tokens[self.word_positions[ordinal]]
            score: float = combined_similarity(
                word,
                token.normalized,
                codes,
                token.phonetic,
                settings.phonetic_weight,
                settings.phonetic_enabled
            )
            cost: float = 1.0 - score

            if score >= settings.match_threshold:
                successors.append(hypothesis.extend(
                    [*passed, AlignmentStep("match", token.index, word, token.normalized, cost)],
                    ordinal + 1
                ))
            successors.append(hypothesis.extend(
                [*passed, AlignmentStep("substitution", token.index, word, token.normalized, cost)],
                ordinal + 1
            ))
            successors.append(hypothesis.extend(
                [*passed, AlignmentStep("deletion", token.index, "", token.normalized, DELETION_COST)],
                ordinal + 1,
                spoken_advance=0
            ))
            successors.append(hypothesis.extend(
                [*passed, AlignmentStep("insertion", None, word, "", insertion_cost)],
                ordinal
            ))
            passed.append(AlignmentStep("deletion", token.index, "", token.normalized))

        if not successors:
            # Past the end of the text: the word can only be extra
            successors.append(hypothesis.extend(
                [AlignmentStep("insertion", None, word, "", insertion_cost)],
                hypothesis.text_position
            ))
        return successors

    def _prune(self, candidates: list[AlignmentHypothesis]) -> list[AlignmentHypothesis]:
        """Keep the beam_width cheapest candidates (stable on ties)."""
        return sorted(candidates, key=AlignmentHypothesis.sort_key)[:self.settings.beam_width]

    def _check_commit(self) -> bool:
        """Commit the best hypothesis if it is unambiguous or clearly ahead."""
        if not self.beam:
            self._reset_beam()
            return False

        best: AlignmentHypothesis = self.beam[0]  # beam is kept sorted
        margin: float = self.settings.advance_margin
        competitive: list[AlignmentHypothesis] = [
            h for h in self.beam
            if h.text_position >= best.text_position - 1 and h.cost <= best.cost + margin
        ]

        # Cost gate scales with the current beam size, not the configured width
        clearly_ahead: bool = (
            best.text_position > self.committed_position + 2
            and best.cost < 0.5 * len(self.beam)
        )

        if len(competitive) != 1 and not clearly_ahead:
            logger.debug("Holding: %d competitive hypotheses", len(competitive))
            return False

        old_pointer: int = self.pointer
        self._apply_path(best.path)
        self.committed_position = best.text_position
        self._reset_beam()
        logger.info(
            "Committed %d steps (cost %.2f): pointer %d -> %d",
            len(best.path), best.cost, old_pointer, self.pointer
        )
        notify(self.hooks, "pointer_moved", self.pointer)
        return True

    def _apply_path(self, path: tuple[AlignmentStep, ...]) -> None:
        """Mark every token a path touches."""
        for step in path:
            if step.token_index is None:
                continue
            status: TokenStatus = _STEP_STATUS[step.kind]
            if self.mark_token(step.token_index, status, step.spoken) and self.on_commit:
                self.on_commit(step.token_index, status, step.spoken)

    def mark_token(self, token_index: int, status: TokenStatus, heard: str = "") -> bool:
        """
        Set a word token's status and annotate it.

        Returns False (and does nothing) for indices that are out of range
        or refer to separators.
        """
        if not isinstance(token_index, int) or not 0 <= token_index < len(self.tokens):
            return False
        token: ReferenceToken = self.tokens[token_index]
        if not token.is_word:
            return False

        token.status = status
        notify(self.hooks, "status_changed", token_index, status)

        expected: str = token.normalized
        if status == "incorrect":
            notify(self.hooks, "annotation_changed", token_index,
                   f"Error: substitution\nExpected: {expected}\nHeard: {heard}")
        elif status == "skipped":
            notify(self.hooks, "annotation_changed", token_index,
                   f"Error: skipped\nExpected: {expected}")
        elif status == "correct":
            notify(self.hooks, "annotation_changed", token_index, f"Correct: {expected}")
        return True
