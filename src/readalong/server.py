# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server for the read-along interface.
Relays recognizer phrases and manual controls to a ReadingSession over a
WebSocket and broadcasts the resulting token updates to every client.
"""

import asyncio
import contextlib
import json
import logging
from dataclasses import asdict
from typing import Any

from aiohttp import web

from .config import Config, load_config, save_config, update_config_section
from .hooks import SessionHooks
from .session import ReadingSession

logger = logging.getLogger(__name__)


class EventCollector(SessionHooks):
    """Queues session notifications as outgoing WebSocket messages."""

    def __init__(self) -> None:
        self.messages: list[dict[str, object]] = []

    def status_changed(self, token_index: int, status: str) -> None:
        self.messages.append({"type": "status", "index": token_index, "status": status})

    def pointer_moved(self, token_index: int) -> None:
        self.messages.append({"type": "pointer", "index": token_index})

    def annotation_changed(self, token_index: int, text: str) -> None:
        self.messages.append({"type": "annotation", "index": token_index, "text": text})

    def rolled_back(self, start_index: int, end_index: int) -> None:
        self.messages.append({"type": "rollback", "start": start_index, "end": end_index})

    def take(self) -> list[dict[str, object]]:
        """Return and clear the queued messages."""
        messages, self.messages = self.messages, []
        return messages


def _int_field(data: dict[str, object], key: str) -> int | None:
    """Read an integer field from a message; None if missing or not a number."""
    value: object = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


class ReadAlongServer:
    """
    Serves the read-along session over HTTP and WebSocket.

    Every message handler runs its session operation to completion before
    awaiting any broadcast, so session state is never observed half-updated.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        session: ReadingSession | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self.events: EventCollector = EventCollector()
        self.session: ReadingSession = session or ReadingSession()
        self.session.set_hooks(self.events)

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_get('/state', self._handle_get_state)
        self.app.router.add_post('/text', self._handle_text_upload)

    def state_message(self, msg_type: str = "state") -> dict[str, object]:
        """Full session state: tokens, pointer, sentences and metrics."""
        session: ReadingSession = self.session
        return {
            "type": msg_type,
            "tokens": [
                {
                    "index": t.index,
                    "text": t.text,
                    "isWord": t.is_word,
                    "status": t.status,
                }
                for t in session.tokens
            ],
            "pointer": session.pointer,
            "active": session.active,
            "sentences": [
                {
                    "id": s.id,
                    "startIndex": s.start_index,
                    "endIndex": s.end_index,
                    "preview": s.preview,
                }
                for s in session.sentences
            ],
            "metrics": session.metrics().to_dict(),
        }

    def metrics_message(self) -> dict[str, object]:
        """Current metrics plus the drift warning flag."""
        return {
            "type": "metrics",
            "metrics": self.session.metrics().to_dict(),
            "drifting": self.session.is_drifting(),
        }

    def settings_message(self) -> dict[str, object]:
        """Current aligner and backtrack settings."""
        return {
            "type": "settings_updated",
            "aligner": asdict(self.session.aligner.settings),
            "backtrack": {
                "window": self.session.backtrack.window,
                "threshold": self.session.backtrack.threshold,
            },
        }

    async def _handle_get_state(self, request: web.Request) -> web.Response:
        """Get the current session state."""
        return web.json_response(self.state_message())

    async def _handle_text_upload(self, request: web.Request) -> web.Response:
        """Handle reference text upload via POST."""
        try:
            data: object = await request.json()
        except json.JSONDecodeError:
            return web.json_response({"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response({"status": "error", "message": "Expected an object"}, status=400)
        await self._on_load_text_message(None, data)
        return web.json_response({"status": "ok", "words": self.session.aligner.word_count})

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            # Send current state
            await ws.send_json(self.state_message("init"))

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data: object = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if not isinstance(data, dict):
                        logger.warning("Ignoring non-object WebSocket message")
                        continue
                    await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse | None, data: dict[str, object]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object | None = data.get("type")
        if not msg_type:
            return

        # Message type to handler dispatch
        handlers: dict[str, object] = {
            "load_text": self._on_load_text_message,
            "start": self._on_start_message,
            "reset": self._on_reset_message,
            "phrase": self._on_phrase_message,
            "partial": self._on_partial_message,
            "mark": self._on_mark_message,
            "back": self._on_back_message,
            "backtrack": self._on_backtrack_message,
            "jump_to": self._on_jump_to_message,
            "jump_to_sentence": self._on_jump_to_sentence_message,
            "realign": self._on_realign_message,
            "settings": self._on_settings_message,
            "save_config": self._on_save_config_message,
        }

        handler: object | None = handlers.get(
            msg_type)  # type: ignore[arg-type]
        if handler:
            await handler(ws, data)  # type: ignore[operator]
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def _flush_events(self) -> None:
        """Broadcast queued session events followed by fresh metrics."""
        for message in self.events.take():
            await self.broadcast(message)
        await self.broadcast(self.metrics_message())

    async def _broadcast_state(self) -> None:
        """Broadcast full state, dropping queued per-token events."""
        self.events.take()
        await self.broadcast(self.state_message())

    async def _on_load_text_message(self, _ws: web.WebSocketResponse | None, data: dict[str, object]) -> None:
        """Handle load text message."""
        text: str = str(data.get("text", ""))
        self.session.load_text(text, markdown=bool(data.get("markdown", False)))
        await self._broadcast_state()

    async def _on_start_message(self, _ws: web.WebSocketResponse | None, _data: dict[str, object]) -> None:
        """Handle start session message."""
        if self.session.start():
            await self._broadcast_state()

    async def _on_reset_message(self, _ws: web.WebSocketResponse | None, _data: dict[str, object]) -> None:
        """Handle reset message."""
        if self.session.reset():
            await self._broadcast_state()

    async def _on_phrase_message(self, _ws: web.WebSocketResponse | None, data: dict[str, object]) -> None:
        """Handle a final recognizer phrase."""
        text: object = data.get("text", "")
        if not isinstance(text, str):
            logger.warning("Ignoring phrase with non-string text")
            return
        was_active: bool = self.session.active
        self.session.on_final_phrase(text)
        await self.broadcast({"type": "heard", "text": text, "final": True})
        if not was_active and self.session.active:
            # The phrase started the session and reset every status
            await self._broadcast_state()
        await self._flush_events()

    async def _on_partial_message(self, _ws: web.WebSocketResponse | None, data: dict[str, object]) -> None:
        """Handle an interim recognizer phrase (display only)."""
        text: str = str(data.get("text", ""))
        self.session.on_partial_phrase(text)
        await self.broadcast({"type": "heard", "text": text, "final": False})

    async def _on_mark_message(self, _ws: web.WebSocketResponse | None, data: dict[str, object]) -> None:
        """Handle manual mark of the current word."""
        if self.session.mark_current(str(data.get("status", ""))):
            await self._flush_events()

    async def _on_back_message(self, _ws: web.WebSocketResponse | None, _data: dict[str, object]) -> None:
        """Handle back-one-word message."""
        if self.session.back_one():
            await self._flush_events()

    async def _on_backtrack_message(self, ws: web.WebSocketResponse | None, _data: dict[str, object]) -> None:
        """Handle manual backtrack request."""
        plan = self.session.trigger_manual_backtrack()
        if plan is None:
            if ws is not None:
                await ws.send_json({"type": "backtrack", "success": False,
                                    "message": "Not enough decisions to backtrack"})
            return
        await self._flush_events()

    async def _on_jump_to_message(self, _ws: web.WebSocketResponse | None, data: dict[str, object]) -> None:
        """Handle jump to token message."""
        index: int | None = _int_field(data, "index")
        if index is None:
            logger.warning("Ignoring jump_to without a numeric index")
            return
        if self.session.jump_to(index):
            await self._flush_events()

    async def _on_jump_to_sentence_message(
        self,
        _ws: web.WebSocketResponse | None,
        data: dict[str, object]
    ) -> None:
        """Handle jump to sentence message."""
        sentence_id: int | None = _int_field(data, "sentenceId")
        if sentence_id is not None and self.session.jump_to_sentence(sentence_id):
            await self._flush_events()

    async def _on_realign_message(self, _ws: web.WebSocketResponse | None, _data: dict[str, object]) -> None:
        """Handle realign-to-next-sentence message."""
        if self.session.realign_next_sentence():
            await self._flush_events()

    async def _on_settings_message(
        self,
        _ws: web.WebSocketResponse | None,
        data: dict[str, object]
    ) -> None:
        """Handle settings update message."""
        aligner_update: object = data.get("aligner", {})
        if isinstance(aligner_update, dict):
            self.session.configure_aligner(**{str(k): v for k, v in aligner_update.items()})
        backtrack_update: object = data.get("backtrack", {})
        if isinstance(backtrack_update, dict):
            self.session.configure_backtrack(
                window=backtrack_update.get("window"),
                threshold=backtrack_update.get("threshold")
            )
        await self.broadcast(self.settings_message())

    async def _on_save_config_message(
        self,
        ws: web.WebSocketResponse | None,
        _data: dict[str, object]
    ) -> None:
        """Handle save config message."""
        config: Config = load_config()
        settings: dict[str, object] = self.settings_message()
        config = update_config_section(config, "aligner", settings["aligner"])  # type: ignore[arg-type]
        config = update_config_section(config, "backtrack", settings["backtrack"])  # type: ignore[arg-type]
        success: bool = save_config(config)
        if ws is not None:
            await ws.send_json({
                "type": "config_saved",
                "success": success
            })

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, ConnectionResetError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        print(f"Web server running at http://{self.host}:{self.port}")

        # Give event loop a moment to start accepting connections
        await asyncio.sleep(0.1)

    async def stop(self) -> None:
        """Stop the web server."""
        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
