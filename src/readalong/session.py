# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
A read-along session: one reference text, its aligner, decision history and
backtrack policy, plus the manual controls a reader or listener can use.

All state lives on the ReadingSession instance; several sessions can run side
by side. Nothing here blocks or awaits, so callers on an event loop can run
each operation to completion between messages.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

from . import debug_log
from .aligner import AlignerSettings, BeamAligner
from .backtrack import BacktrackController, RollbackPlan, drift_cost
from .decision_buffer import DecisionBuffer, DecisionRecord, Outcome
from .hooks import notify
from .metrics import ReadingMetrics, compute_metrics
from .tokenizer import (
    PhoneticEncoder,
    ReferenceToken,
    Sentence,
    compute_sentences,
    double_metaphone,
    find_sentence,
    first_word_index,
    next_word_index,
    prev_word_index,
    reset_word_statuses,
    tokenize,
    tokenize_markdown,
)

logger = logging.getLogger(__name__)

MANUAL_OUTCOMES: tuple[Outcome, ...] = ("correct", "incorrect", "skipped")

# Drift warning: look back over this many decided words...
DRIFT_LOOKBACK: int = 8
# ...and warn when at least this many were decided and enough were errors
DRIFT_MIN_DECIDED: int = 4
DRIFT_MIN_ERRORS: int = 3

SUMMARY_RECENT: int = 10


class ReadingSession:
    """
    Coordinates alignment, decision history and auto-backtrack for one text.

    Phrases arrive through on_final_phrase()/on_partial_phrase(); manual
    controls are mark_current(), back_one(), trigger_manual_backtrack() and
    the jump methods. Renderers observe everything through ``hooks``.
    Words are compared phonetically with Double Metaphone unless another
    ``phonetic_encoder`` (or None) is given.
    """

    def __init__(
        self,
        hooks: object | None = None,
        aligner_settings: AlignerSettings | None = None,
        backtrack_window: int = 8,
        backtrack_threshold: float = 2.0,
        history_size: int = 20,
        phonetic_encoder: PhoneticEncoder | None = double_metaphone,
        clock: Callable[[], float] = time.time
    ) -> None:
        self.hooks: object | None = hooks
        self.phonetic_encoder: PhoneticEncoder | None = phonetic_encoder
        self.clock: Callable[[], float] = clock

        self.aligner_settings: AlignerSettings = AlignerSettings()
        if aligner_settings is not None:
            self.aligner_settings.update(**asdict(aligner_settings))

        self.backtrack: BacktrackController = BacktrackController(backtrack_window, backtrack_threshold)
        self.history: DecisionBuffer = DecisionBuffer(history_size)

        self.tokens: list[ReferenceToken] = []
        self.sentences: list[Sentence] = []
        self.aligner: BeamAligner = self._new_aligner()

        self.started_at: float | None = None
        self.active: bool = False
        self.last_heard: str = ""
        self.rollback_count: int = 0

    def _new_aligner(self) -> BeamAligner:
        return BeamAligner(
            self.tokens,
            hooks=self.hooks,
            settings=self.aligner_settings,
            phonetic_encoder=self.phonetic_encoder,
            on_commit=self._record_automatic
        )

    def set_hooks(self, hooks: object | None) -> None:
        """Replace the hooks object for this session and its aligner."""
        self.hooks = hooks
        self.aligner.hooks = hooks

    @property
    def pointer(self) -> int:
        """Token index of the next word to read (len(tokens) when done)."""
        return self.aligner.pointer

    @property
    def finished(self) -> bool:
        """True once every word has been passed."""
        return self.pointer >= len(self.tokens)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    # ------------------------------------------------------------------
    # Text and session lifecycle
    # ------------------------------------------------------------------

    def load_text(self, text: str, markdown: bool = False) -> int:
        """
        Load a new reference text and prepare a fresh aligner for it.

        Args:
            text: The document
            markdown: Render the document as Markdown and read its visible text

        Returns:
            Number of word tokens
        """
        tokenizer = tokenize_markdown if markdown else tokenize
        self.tokens = tokenizer(text or "", self.phonetic_encoder)
        self.sentences = compute_sentences(self.tokens)
        self.started_at = None
        self.active = False
        self.last_heard = ""
        self.rollback_count = 0
        self.history.clear()

        self.aligner = self._new_aligner()
        self.aligner.set_pointer(max(0, first_word_index(self.tokens)))
        debug_log.clear_logs()

        logger.info("Loaded text: %d tokens, %d words, %d sentences",
                    len(self.tokens), self.aligner.word_count, len(self.sentences))
        return self.aligner.word_count

    def _restart(self, active: bool) -> None:
        reset_word_statuses(self.tokens)
        self.history.clear()
        self.rollback_count = 0
        self.active = active
        self.started_at = self.clock() if active else None
        self.aligner.set_pointer(max(0, first_word_index(self.tokens)))

    def start(self) -> bool:
        """Begin a reading session from the first word.

        Returns False when no text is loaded.
        """
        if not self.tokens:
            return False
        self._restart(active=True)
        logger.info("Session started")
        return True

    def reset(self) -> bool:
        """Clear all progress and stop the session."""
        if not self.tokens:
            return False
        self._restart(active=False)
        logger.info("Session reset")
        return True

    # ------------------------------------------------------------------
    # Recognizer input
    # ------------------------------------------------------------------

    def on_partial_phrase(self, text: str) -> None:
        """Remember interim recognizer text; it is never aligned."""
        self.last_heard = text or ""

    def on_final_phrase(self, text: str) -> int:
        """
        Align a final recognizer phrase.

        Starts the session if it isn't running, then feeds the aligner and
        checks for drift if any words were consumed.

        Returns:
            Number of words consumed
        """
        self.last_heard = text or ""
        if not self.tokens:
            return 0
        if not self.active:
            self.start()

        consumed: int = self.aligner.consume_phrase(text)
        debug_log.log_phrase(self.last_heard, consumed, self.pointer)
        if consumed > 0:
            self.check_backtrack()
        return consumed

    def _record_automatic(self, token_index: int, status: str, heard: str) -> None:
        """Record a decision the aligner committed."""
        if not self.active or status not in MANUAL_OUTCOMES:
            return
        expected: str = self.tokens[token_index].normalized
        self.history.push(DecisionRecord(
            token_index=token_index,
            outcome=status,  # type: ignore[arg-type]
            timestamp_ms=self._now_ms(),
            expected=expected,
            heard=heard,
            automatic=True
        ))
        debug_log.log_decision(token_index, status, expected, heard, automatic=True)

    # ------------------------------------------------------------------
    # Backtracking
    # ------------------------------------------------------------------

    def check_backtrack(self) -> RollbackPlan | None:
        """Roll back if recent decisions show drift."""
        plan = self.backtrack.evaluate(self.history, self.pointer, len(self.tokens))
        if plan is not None:
            self._apply_rollback(plan, "auto")
        return plan

    def trigger_manual_backtrack(self) -> RollbackPlan | None:
        """Roll back on request; needs at least four recorded decisions."""
        plan = self.backtrack.plan_manual(self.history, self.pointer, len(self.tokens))
        if plan is None:
            logger.info("Not enough decisions to backtrack")
            return None
        self._apply_rollback(plan, "manual")
        return plan

    def _reset_token(self, index: int) -> None:
        token: ReferenceToken = self.tokens[index]
        if not token.is_word:
            return
        token.status = "pending"
        notify(self.hooks, "status_changed", index, "pending")
        notify(self.hooks, "annotation_changed", index, "")

    def _apply_rollback(self, plan: RollbackPlan, reason: str) -> None:
        for i in range(plan.reset_start, plan.reset_end + 1):
            self._reset_token(i)
        self.aligner.set_pointer(plan.target_index)
        self.history.clear()
        self.rollback_count += 1
        notify(self.hooks, "rolled_back", plan.reset_start, plan.reset_end)
        debug_log.log_rollback(plan.target_index, plan.reset_start, plan.reset_end,
                               plan.cost, reason)

    # ------------------------------------------------------------------
    # Manual controls
    # ------------------------------------------------------------------

    def mark_current(self, status: str) -> bool:
        """
        Mark the word at the pointer and advance to the next word.

        Args:
            status: "correct", "incorrect" or "skipped"

        Returns:
            False if the status is unknown or there is no current word
        """
        if status not in MANUAL_OUTCOMES:
            logger.warning("Ignoring manual mark with status %r", status)
            return False
        index: int = self.pointer
        if index >= len(self.tokens) or not self.tokens[index].is_word:
            return False

        expected: str = self.tokens[index].normalized
        heard: str = expected if status == "correct" else ""
        self.aligner.mark_token(index, status, heard)  # type: ignore[arg-type]
        self.history.push(DecisionRecord(
            token_index=index,
            outcome=status,  # type: ignore[arg-type]
            timestamp_ms=self._now_ms(),
            expected=expected,
            heard=heard,
            automatic=False
        ))
        debug_log.log_decision(index, status, expected, heard, automatic=False)

        following: int = next_word_index(self.tokens, index)
        self.aligner.set_pointer(following if following >= 0 else len(self.tokens))
        self.check_backtrack()
        return True

    def back_one(self) -> bool:
        """Step back one word, reset it to pending and undo the last decision."""
        previous: int = prev_word_index(self.tokens, self.pointer)
        if previous < 0:
            return False
        self._reset_token(previous)
        self.aligner.set_pointer(previous)
        self.history.undo_last()
        return True

    def jump_to(self, token_index: int) -> bool:
        """Move the reading position without changing any status."""
        if not self.tokens or not isinstance(token_index, int) or isinstance(token_index, bool):
            return False
        self.aligner.set_pointer(max(0, min(token_index, len(self.tokens))))
        return True

    def jump_to_sentence(self, sentence_id: int) -> bool:
        """Move the reading position to the start of a sentence."""
        for sentence in self.sentences:
            if sentence.id == sentence_id:
                self.aligner.set_pointer(sentence.start_index)
                return True
        return False

    def realign_next_sentence(self) -> bool:
        """Move the reading position to the start of the next sentence."""
        current = find_sentence(self.sentences, self.pointer)
        if current is None or current.id + 1 >= len(self.sentences):
            return False
        self.aligner.set_pointer(self.sentences[current.id + 1].start_index)
        return True

    def is_drifting(self) -> bool:
        """True when most recently decided words before the pointer are errors."""
        decided: int = 0
        errors: int = 0
        for i in range(min(self.pointer, len(self.tokens)) - 1, -1, -1):
            if decided >= DRIFT_LOOKBACK:
                break
            token: ReferenceToken = self.tokens[i]
            if not token.is_word:
                continue
            if token.status in ("incorrect", "skipped"):
                errors += 1
            if token.status != "pending":
                decided += 1
        return decided >= DRIFT_MIN_DECIDED and errors >= DRIFT_MIN_ERRORS

    # ------------------------------------------------------------------
    # Settings and reporting
    # ------------------------------------------------------------------

    def configure_aligner(self, **options: Any) -> AlignerSettings:
        """Update aligner settings; they also apply to texts loaded later."""
        self.aligner.configure(**options)
        self.aligner_settings = AlignerSettings(**asdict(self.aligner.settings))
        return self.aligner_settings

    def configure_backtrack(self, window: Any = None, threshold: Any = None) -> None:
        """Update the auto-backtrack window and threshold."""
        self.backtrack.configure(window=window, threshold=threshold)

    def metrics(self) -> ReadingMetrics:
        """Current reading metrics."""
        return compute_metrics(self.tokens, self.started_at, self.clock())

    def history_summary(self) -> dict[str, Any]:
        """Debug view of the decision history and its drift cost."""
        recent: list[DecisionRecord] = self.history.get_recent(SUMMARY_RECENT)
        return {
            "count": self.history.count,
            "window": self.backtrack.window,
            "threshold": self.backtrack.threshold,
            "cost": drift_cost(recent),
            "recent": [asdict(r) for r in recent],
        }
