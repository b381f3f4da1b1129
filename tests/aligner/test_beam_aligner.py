"""
Tests for beam-search alignment of spoken phrases against reference text.
"""

from readalong.aligner import BeamAligner
from readalong.tokenizer import tokenize


def _statuses(aligner: BeamAligner) -> list[str]:
    return [t.status for t in aligner.tokens if t.is_word]


class TestBasicMatching:
    """Tests for reading the text as written."""

    def test_exact_phrase_all_correct(self) -> None:
        """Reading every word correctly marks every word correct."""
        aligner = BeamAligner(tokenize("the quick brown fox"))

        consumed = aligner.consume_phrase("the quick brown fox")

        assert consumed == 4
        assert _statuses(aligner) == ["correct"] * 4
        assert aligner.pointer == len(aligner.tokens)

    def test_word_by_word_phrases(self) -> None:
        """Words arriving one phrase at a time advance the pointer."""
        aligner = BeamAligner(tokenize("the quick brown fox"))

        aligner.consume_phrase("the")
        assert aligner.tokens[0].status == "pending"
        assert aligner.pointer == 0

        aligner.consume_phrase("quick")
        assert aligner.pointer == 0

        aligner.consume_phrase("brown")
        assert _statuses(aligner) == ["correct", "correct", "correct", "pending"]
        assert aligner.pointer == 6

        # One more word is not a clear enough lead to commit alone
        aligner.consume_phrase("fox")
        assert aligner.pointer == 6

    def test_case_and_punctuation_ignored(self) -> None:
        """Spoken words are normalized before matching."""
        aligner = BeamAligner(tokenize("Hello, big world!"))
        aligner.consume_phrase("HELLO big world")
        assert _statuses(aligner) == ["correct", "correct", "correct"]

    def test_empty_phrase(self) -> None:
        """Empty or whitespace-only phrases consume nothing."""
        aligner = BeamAligner(tokenize("the cat"))
        assert aligner.consume_phrase("") == 0
        assert aligner.consume_phrase("   ") == 0
        assert aligner.consume_phrase("... !") == 0
        assert aligner.pointer == 0
        assert _statuses(aligner) == ["pending", "pending"]

    def test_non_string_phrase(self) -> None:
        """Non-string input is ignored."""
        aligner = BeamAligner(tokenize("the cat"))
        assert aligner.consume_phrase(None) == 0  # type: ignore[arg-type]

    def test_empty_reference(self) -> None:
        """An aligner with no words absorbs speech without marking anything."""
        aligner = BeamAligner([])
        assert aligner.consume_phrase("hello there") == 2
        assert aligner.pointer == 0


class TestErrors:
    """Tests for substitutions and skipped words."""

    def test_substitution_marked_incorrect(self) -> None:
        """A misread word is marked incorrect against the expected word."""
        aligner = BeamAligner(tokenize("the dog can bark loudly"))

        aligner.consume_phrase("the dog can park loudly")

        assert _statuses(aligner) == ["correct", "correct", "correct", "incorrect", "correct"]
        assert aligner.pointer == len(aligner.tokens)

    def test_unrelated_word_is_extra(self) -> None:
        """A word unlike any nearby token is extra; the word it replaced is skipped."""
        aligner = BeamAligner(tokenize("the quick brown fox"))

        aligner.consume_phrase("the quick red fox")

        assert _statuses(aligner) == ["correct", "correct", "skipped", "correct"]
        assert aligner.pointer == len(aligner.tokens)

    def test_skipped_word(self) -> None:
        """A word passed over without being read is marked skipped."""
        aligner = BeamAligner(tokenize("the quick brown fox"))

        aligner.consume_phrase("the brown fox")

        assert _statuses(aligner) == ["correct", "skipped", "correct", "correct"]

    def test_annotations(self, hooks) -> None:
        """Each marking sends a human-readable annotation."""
        aligner = BeamAligner(tokenize("the dog can bark loudly"), hooks=hooks)

        aligner.consume_phrase("the dog can park loudly")

        annotations = dict(hooks.of_type("annotation"))
        assert annotations[0] == "Correct: the"
        assert annotations[6] == "Error: substitution\nExpected: bark\nHeard: park"

    def test_skip_annotation(self, hooks) -> None:
        """Skipped words are annotated with the expected word."""
        aligner = BeamAligner(tokenize("the quick brown fox"), hooks=hooks)
        aligner.consume_phrase("the brown fox")
        assert dict(hooks.of_type("annotation"))[2] == "Error: skipped\nExpected: quick"


class TestCommitDecision:
    """Tests for when the best hypothesis is committed."""

    def test_first_word_alone_is_held(self) -> None:
        """A single word at the start of the text does not commit on its own."""
        aligner = BeamAligner(tokenize("the quick brown fox"))

        aligner.consume_phrase("the")

        assert aligner.tokens[0].status == "pending"
        assert aligner.pointer == 0
        assert aligner.beam[0].text_position == 1

    def test_ambiguous_phrase_is_held(self) -> None:
        """Competing hypotheses within the margin keep the decision open."""
        aligner = BeamAligner(tokenize("the quick brown fox"))
        aligner.configure(advance_margin=1.0)

        aligner.consume_phrase("the")

        assert aligner.pointer == 0
        assert aligner.tokens[0].status == "pending"
        assert len(aligner.beam) > 1

    def test_clear_lead_commits(self) -> None:
        """A hypothesis well ahead of the committed position commits."""
        aligner = BeamAligner(tokenize("the quick brown fox"))
        aligner.configure(advance_margin=1.0)

        aligner.consume_phrase("the")
        aligner.consume_phrase("quick brown fox")

        assert _statuses(aligner) == ["correct"] * 4
        assert aligner.pointer == len(aligner.tokens)
        assert len(aligner.beam) == 1

    def test_on_commit_called_per_marked_token(self) -> None:
        """on_commit hears about every token a commit marks."""
        committed: list[tuple[int, str, str]] = []
        aligner = BeamAligner(
            tokenize("the quick brown fox"),
            on_commit=lambda i, s, h: committed.append((i, s, h))
        )

        aligner.consume_phrase("the brown fox")

        assert committed == [
            (0, "correct", "the"),
            (2, "skipped", ""),
            (4, "correct", "brown"),
            (6, "correct", "fox"),
        ]

    def test_pointer_notifications(self, hooks) -> None:
        """A commit reports the new pointer."""
        aligner = BeamAligner(tokenize("the quick brown fox"), hooks=hooks)
        aligner.consume_phrase("the quick brown")
        assert hooks.of_type("pointer")[-1] == (6,)


class TestBeamInvariants:
    """Tests for properties that hold after every phrase."""

    def test_beam_never_exceeds_width_and_is_sorted(self) -> None:
        """The beam is pruned to its width and ordered best first."""
        aligner = BeamAligner(tokenize("one two three four five six seven eight"))
        aligner.configure(beam_width=2, advance_margin=1.0)

        for phrase in ["one", "uh", "two", "zebra", "four"]:
            aligner.consume_phrase(phrase)
            assert len(aligner.beam) <= 2
            keys = [h.sort_key() for h in aligner.beam]
            assert keys == sorted(keys)

    def test_pointer_never_moves_backwards(self) -> None:
        """Commits only move the pointer forwards."""
        aligner = BeamAligner(tokenize(
            "once upon a time in a quiet village a young reader practiced every day"
        ))
        last = aligner.pointer
        for phrase in ["once upon", "a time", "in the quiet", "village", "a a a",
                       "young reader", "practice", "every day"]:
            aligner.consume_phrase(phrase)
            assert aligner.pointer >= last
            last = aligner.pointer

    def test_hypotheses_start_at_committed_position(self) -> None:
        """After a commit the beam restarts with one zero-cost hypothesis."""
        aligner = BeamAligner(tokenize("the quick brown fox"))
        aligner.consume_phrase("the quick brown")
        assert len(aligner.beam) == 1
        assert aligner.beam[0].cost == 0.0
        assert aligner.beam[0].text_position == aligner.committed_position == 3


class TestSetPointer:
    """Tests for forcing the committed position."""

    def test_set_pointer_resets_beam(self, hooks) -> None:
        """set_pointer moves the committed position and clears the beam."""
        aligner = BeamAligner(tokenize("the quick brown fox"), hooks=hooks)
        aligner.configure(advance_margin=1.0)
        aligner.consume_phrase("the")

        aligner.set_pointer(4)

        assert aligner.pointer == 4
        assert aligner.committed_position == 2
        assert len(aligner.beam) == 1
        assert hooks.of_type("pointer")[-1] == (4,)

    def test_set_pointer_clamps(self) -> None:
        """Out-of-range positions are clamped."""
        aligner = BeamAligner(tokenize("the cat"))
        aligner.set_pointer(50)
        assert aligner.pointer == len(aligner.tokens)
        aligner.set_pointer(-5)
        assert aligner.pointer == 0

    def test_set_pointer_on_separator(self) -> None:
        """A separator position resolves to the following word."""
        aligner = BeamAligner(tokenize("the cat"))
        aligner.set_pointer(1)
        assert aligner.pointer == 2

    def test_reading_resumes_after_set_pointer(self) -> None:
        """Alignment continues from a forced position."""
        aligner = BeamAligner(tokenize("the quick brown fox jumps"))
        aligner.set_pointer(4)
        aligner.consume_phrase("brown fox jumps")
        assert _statuses(aligner) == ["pending", "pending", "correct", "correct", "correct"]


class TestMarkToken:
    """Tests for direct token marking."""

    def test_mark_ignores_separators_and_out_of_range(self, hooks) -> None:
        """Invalid targets are no-ops."""
        aligner = BeamAligner(tokenize("the cat"), hooks=hooks)
        assert aligner.mark_token(1, "correct") is False
        assert aligner.mark_token(99, "correct") is False
        assert aligner.mark_token(-1, "correct") is False
        assert hooks.events == []

    def test_mark_word(self, hooks) -> None:
        """Marking a word updates its status and notifies."""
        aligner = BeamAligner(tokenize("the cat"), hooks=hooks)
        assert aligner.mark_token(2, "skipped") is True
        assert aligner.tokens[2].status == "skipped"
        assert ("status", 2, "skipped") in hooks.events

    def test_failing_hook_does_not_break_alignment(self) -> None:
        """A hook that raises is logged and alignment carries on."""
        class BrokenHooks:
            def status_changed(self, token_index: int, status: str) -> None:
                raise RuntimeError("renderer gone")

        aligner = BeamAligner(tokenize("the cat sat"), hooks=BrokenHooks())
        aligner.consume_phrase("the cat sat")
        assert _statuses(aligner) == ["correct", "correct", "correct"]
