# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Debug tool for replaying a transcript through a reading session.

This CLI tool takes a transcript file (one final recognizer phrase per line)
and a text file, feeds each phrase to a ReadingSession, and outputs what the
aligner decided for every phrase, any rollbacks, and a final summary.
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TextIO

from .hooks import SessionHooks
from .session import ReadingSession

logger = logging.getLogger(__name__)


@dataclass
class PhraseEvent:
    """What happened while aligning one transcript line."""
    transcript_line: int
    phrase: str
    consumed: int
    pointer_before: int
    pointer_after: int
    decisions: list[tuple[int, str]] = field(default_factory=list)
    rollbacks: list[tuple[int, int]] = field(default_factory=list)


class _ReplayHooks(SessionHooks):
    """Collects status changes and rollbacks for the phrase being replayed."""

    def __init__(self) -> None:
        self.decisions: list[tuple[int, str]] = []
        self.rollbacks: list[tuple[int, int]] = []

    def status_changed(self, token_index: int, status: str) -> None:
        self.decisions.append((token_index, status))

    def rolled_back(self, start_index: int, end_index: int) -> None:
        self.rollbacks.append((start_index, end_index))

    def take(self) -> tuple[list[tuple[int, str]], list[tuple[int, int]]]:
        """Return and reset what was collected."""
        decisions, rollbacks = self.decisions, self.rollbacks
        self.decisions, self.rollbacks = [], []
        return decisions, rollbacks


def load_transcript(path: Path) -> list[str]:
    """Load transcript file and extract transcript lines.

    Filters out metadata lines (starting with '===').
    Returns list of transcript text lines.
    """
    lines: list[str] = []
    with open(path, encoding='utf-8') as f:
        for line in f:
            stripped_line: str = line.strip()
            # Skip metadata lines and empty lines
            if stripped_line.startswith('===') or not stripped_line:
                continue
            lines.append(stripped_line)
    return lines


def load_text(path: Path) -> str:
    """Load reference text content."""
    with open(path, encoding='utf-8') as f:
        return f.read()


def _token_label(session: ReadingSession, index: int) -> str:
    if index >= len(session.tokens):
        return "<END>"
    return session.tokens[index].text


def replay_transcript(
    transcript_lines: list[str],
    text: str,
    output: TextIO,
    verbose: bool = False,
    markdown: bool = False,
    session: ReadingSession | None = None
) -> list[PhraseEvent]:
    """Replay transcript phrases through a session and log what happened.

    Args:
        transcript_lines: Final recognizer phrases, in order
        text: The reference text
        output: File handle to write log output
        verbose: If True, log every decision. If False, only pointer moves
            and rollbacks.
        markdown: Treat the text as Markdown
        session: Session to use (a default one is created if None)

    Returns:
        List of per-phrase events
    """
    hooks = _ReplayHooks()
    if session is None:
        session = ReadingSession()
    session.set_hooks(hooks)
    session.load_text(text, markdown=markdown)
    session.start()
    hooks.take()
    events: list[PhraseEvent] = []

    # Write header
    output.write("=" * 80 + "\n")
    output.write("READ-ALONG REPLAY LOG\n")
    output.write(f"Generated: {datetime.now().isoformat()}\n")
    output.write(f"Text words: {session.aligner.word_count}\n")
    output.write(f"Transcript lines: {len(transcript_lines)}\n")
    output.write("=" * 80 + "\n\n")

    # Write text words reference
    output.write("TEXT WORDS:\n")
    output.write("-" * 40 + "\n")
    for token in session.tokens:
        if token.is_word:
            output.write(f"  [{token.index:4d}] {token.text}\n")
    output.write("\n" + "=" * 80 + "\n\n")

    output.write("ALIGNMENT LOG:\n")
    output.write("-" * 40 + "\n")

    for line_num, line in enumerate(transcript_lines, start=1):
        line_display: str = f"--- Line {line_num}: \"{line[:60]}"
        line_display += '...' if len(line) > 60 else ''
        line_display += "\" ---"
        output.write(f"\n{line_display}\n")

        pointer_before: int = session.pointer
        consumed: int = session.on_final_phrase(line)
        pointer_after: int = session.pointer
        decisions, rollbacks = hooks.take()

        event = PhraseEvent(
            transcript_line=line_num,
            phrase=line,
            consumed=consumed,
            pointer_before=pointer_before,
            pointer_after=pointer_after,
            decisions=[d for d in decisions if d[1] != "pending"],
            rollbacks=rollbacks
        )
        events.append(event)

        if verbose:
            for index, status in event.decisions:
                output.write(f"  [{index:4d}] \"{_token_label(session, index)}\" {status}\n")

        for start, end in rollbacks:
            output.write("  *** ROLLBACK ***\n")
            output.write(f"      Reset: {start} -> {end}\n")
            output.write(
                f"      Resume at: {pointer_after} \"{_token_label(session, pointer_after)}\"\n")

        if pointer_after != pointer_before or verbose:
            output.write(
                f"  pointer: {pointer_before} -> {pointer_after} "
                f"\"{_token_label(session, pointer_after)}\" ({consumed} words)\n")
        else:
            output.write(f"  (holding, {len(session.aligner.beam)} hypotheses)\n")

    # Write summary
    metrics = session.metrics()
    output.write("\n" + "=" * 80 + "\n")
    output.write("SUMMARY:\n")
    output.write("-" * 40 + "\n")
    output.write(f"Total lines processed: {len(transcript_lines)}\n")
    output.write(f"Final position: {session.pointer} / {len(session.tokens)}\n")
    output.write(f"Correct: {metrics.correct}\n")
    output.write(f"Incorrect: {metrics.incorrect}\n")
    output.write(f"Skipped: {metrics.skipped}\n")
    output.write(f"Pending: {metrics.total - metrics.completed}\n")
    accuracy: str = f"{metrics.accuracy:.1%}" if metrics.accuracy is not None else "n/a"
    output.write(f"Accuracy: {accuracy}\n")
    output.write(f"Rollbacks: {session.rollback_count}\n")

    rollback_events: list[PhraseEvent] = [e for e in events if e.rollbacks]
    if rollback_events:
        output.write("\nRollback events:\n")
        for e in rollback_events:
            for start, end in e.rollbacks:
                output.write(f"  Line {e.transcript_line}: reset {start}..{end}\n")

    return events


def main() -> None:
    """CLI entry point for the replay tool."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Replay a transcript through the read-along aligner"
    )

    parser.add_argument(
        "transcript",
        type=Path,
        help="Path to transcript file (one final phrase per line)"
    )

    parser.add_argument(
        "text",
        type=Path,
        help="Path to reference text file"
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output log file path (default: stdout)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every decision, not just pointer moves and rollbacks"
    )

    parser.add_argument(
        "--markdown",
        action="store_true",
        help="Treat the text file as Markdown"
    )

    args: argparse.Namespace = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Validate inputs
    if not args.transcript.exists():
        print(
            f"Error: Transcript file not found: {args.transcript}", file=sys.stderr)
        sys.exit(1)

    if not args.text.exists():
        print(f"Error: Text file not found: {args.text}", file=sys.stderr)
        sys.exit(1)

    # Load files
    try:
        transcript_lines: list[str] = load_transcript(args.transcript)
        text: str = load_text(args.text)
    except OSError as e:
        print(f"Error loading files: {e}", file=sys.stderr)
        sys.exit(1)

    if not transcript_lines:
        print("Error: No transcript lines found", file=sys.stderr)
        sys.exit(1)

    # Run replay
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            replay_transcript(transcript_lines, text, f, args.verbose, args.markdown)
        print(f"Replay log written to: {args.output}")
    else:
        replay_transcript(transcript_lines, text, sys.stdout, args.verbose, args.markdown)


if __name__ == "__main__":
    main()
