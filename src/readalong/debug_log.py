"""
Debug logging of alignment decisions to a file.

Writes one log file, decisions.log, recording each final phrase, every
decision it produced and any rollbacks, so a reading session can be
reconstructed afterwards.

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path

# Log files location (in project root)
LOG_DIR: Path = Path(__file__).parent.parent.parent / "logs"
DECISION_LOG: Path = LOG_DIR / "decisions.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def clear_logs() -> None:
    """Clear the log file for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(DECISION_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_phrase(phrase: str, consumed: int, pointer: int) -> None:
    """
    Log a final phrase handed to the aligner.

    Args:
        phrase: The recognized text
        consumed: Number of words the aligner took from it
        pointer: Reading position after alignment
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(DECISION_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] phrase words={consumed:2d} pointer={pointer:4d} "
            f"text=\"{phrase[-60:]}\"\n")


def log_decision(token_index: int, outcome: str, expected: str, heard: str = "",
                 automatic: bool = True) -> None:
    """Log a single decision about a token."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    source: str = "auto" if automatic else "manual"
    with open(DECISION_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] {outcome:10} {source:6} pos={token_index:4d} "
            f"expected=\"{expected}\" heard=\"{heard}\"\n")


def log_rollback(target: int, reset_start: int, reset_end: int, cost: float,
                 reason: str) -> None:
    """
    Log a rollback of the reading position.

    Args:
        target: Token index the pointer moved back to
        reset_start: First token reset to pending
        reset_end: Last token reset to pending
        cost: Drift cost that triggered the rollback
        reason: "auto" or "manual"
    """
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(DECISION_LOG, 'a', encoding='utf-8') as f:
        f.write(
            f"[{_timestamp()}] ROLLBACK ({reason}): -> {target} "
            f"reset {reset_start}..{reset_end} cost={cost:.2f}\n")
