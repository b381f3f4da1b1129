# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Notification hooks from the alignment core to whatever renders the text.

Renderers subclass SessionHooks and override the events they care about.
The core calls hooks through notify(), so a missing hooks object or method is
a no-op, and a failing hook is logged rather than raised into the core.
"""

import logging

logger = logging.getLogger(__name__)


class SessionHooks:
    """Base hooks object; every event is a no-op by default."""

    def status_changed(self, token_index: int, status: str) -> None:
        """A token's status changed."""

    def pointer_moved(self, token_index: int) -> None:
        """The committed reading position moved."""

    def annotation_changed(self, token_index: int, text: str) -> None:
        """A human-readable note about a token changed."""

    def rolled_back(self, start_index: int, end_index: int) -> None:
        """An auto or manual backtrack reset the given token range."""


def notify(hooks: object | None, event: str, *args: object) -> None:
    """Invoke ``hooks.<event>(*args)`` if it exists."""
    if hooks is None:
        return
    handler = getattr(hooks, event, None)
    if handler is None:
        return
    try:
        handler(*args)
    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Hook %s raised; ignoring", event)
