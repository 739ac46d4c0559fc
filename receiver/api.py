"""
receiver/api.py
─────────────────────────────────────────────────────────────────────────────
mINd-RECEIVER — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module (transport bridges, tests):
         from receiver.api import ReceiverAPI
         api = ReceiverAPI(db_path=Path("receiver.db"))
         result = api.receive_sms(sub_id=1, frames=[...])

  2. FastAPI HTTP server (transport bridge posts received messages):
         python -m receiver.api                   # default: port 8766
         python -m receiver.api --port 9000

ENDPOINTS:
  POST /sms                             — run one SMS batch through the pipeline
  POST /mms                             — stage an MMS payload and run it through the pipeline
  GET  /conversations                   — conversations, newest first
  GET  /conversations/{thread_id}       — single conversation
  GET  /conversations/{thread_id}/messages — messages of a thread, newest first
  PUT  /active                          — set / clear the foreground conversation
  POST /blocking                        — add a block / unblock rule
  POST /contacts                        — add a contact
  GET  /badge                           — badge count, shortcuts, pending notifications
  GET  /config, POST /config            — read / update receiver_config.json
  GET  /health                          — liveness

The server binds to 127.0.0.1 by default.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query
from pydantic import BaseModel

from receiver import __version__
from receiver.active import ActiveConversation
from receiver.blocking.blocklist import BlockListPolicy
from receiver.config import (
    DEFAULT_CONFIG,
    PipelineSettings,
    load_config,
    save_config,
    settings_from_config,
)
from receiver.contacts.directory import SqliteContactDirectory
from receiver.errors import ConfigError, ReceiverError
from receiver.models.record import MmsPayload, SmsBatch, SmsFrame
from receiver.notifiers import BadgeNotifier, NotificationNotifier, ShortcutNotifier
from receiver.pipeline import IngestionPipeline
from receiver.stores.conversation_store import ConversationStore
from receiver.stores.database import Database
from receiver.stores.message_store import MessageStore
from receiver.sync import StagedMmsSync

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class ReceiverAPI:
    """
    Pure-Python facade: wires the stores, collaborators, notifiers and
    pipeline over one database file.

    Usage:
        api = ReceiverAPI(db_path=Path("receiver.db"))
        api.block("+16125550009", reason="spam")
        api.receive_sms(1, [{"address": "+16125550001", "body": "Hi",
                             "timestamp_ms": 1704067200000}])
        api.get_conversations()
    """

    def __init__(
        self,
        db_path:      Path = Path("receiver.db"),
        config:       Optional[Dict[str, Any]] = None,
        project_root: Optional[Path] = None,
    ):
        self.db_path       = Path(db_path)
        self.project_root  = project_root
        self.config        = dict(config) if config is not None else load_config(project_root)

        self.db            = Database(self.db_path)
        self.messages      = MessageStore(self.db)
        self.conversations = ConversationStore(self.db)
        self.blocklist     = BlockListPolicy(self.db)
        self.contacts      = SqliteContactDirectory(self.db)
        self.mms_sync      = StagedMmsSync(self.messages)
        self.active        = ActiveConversation()

        self.notification  = NotificationNotifier(self.conversations)
        self.shortcuts     = ShortcutNotifier(
            self.conversations,
            limit = int(self.config.get("shortcut_limit", DEFAULT_CONFIG["shortcut_limit"])),
        )
        self.badge         = BadgeNotifier(self.conversations)

        self.pipeline = IngestionPipeline(
            messages      = self.messages,
            conversations = self.conversations,
            blocking      = self.blocklist,
            contacts      = self.contacts,
            mms_sync      = self.mms_sync,
            active        = self.active,
            notification  = self.notification,
            shortcuts     = self.shortcuts,
            badge         = self.badge,
        )

    def settings(self) -> PipelineSettings:
        """Snapshot of the current preferences for one invocation."""
        return settings_from_config(self.config)

    def close(self) -> None:
        self.db.close()

    # ── RECEIVE ──────────────────────────────────────────────────────────

    def receive_sms(self, sub_id: int, frames: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Run one logical SMS through the pipeline.
        frames: [{"address", "body", "timestamp_ms"}, ...] in arrival order.
        """
        batch = SmsBatch(
            sub_id = int(sub_id),
            frames = tuple(_frame(f) for f in frames),
        )
        result = self.pipeline.receive_sms(batch, self.settings())
        return _result_dict(result)

    def receive_mms(
        self,
        locator:      str,
        sub_id:       int,
        address:      str,
        body:         str,
        timestamp_ms: int,
    ) -> Dict[str, Any]:
        """Stage an MMS as the transport would, then run it through the pipeline."""
        self.mms_sync.stage(locator, MmsPayload(
            sub_id       = int(sub_id),
            address      = address,
            body         = body,
            timestamp_ms = int(timestamp_ms),
        ))
        result = self.pipeline.receive_mms(locator, self.settings())
        return _result_dict(result)

    # ── QUERY ────────────────────────────────────────────────────────────

    def get_conversations(
        self,
        include_archived: bool = True,
        include_blocked:  bool = True,
        limit:            int  = 100,
    ) -> List[Dict[str, Any]]:
        limit = min(int(limit), 500)
        return [asdict(c) for c in self.conversations.list_conversations(
            include_archived = include_archived,
            include_blocked  = include_blocked,
            limit            = limit,
        )]

    def get_conversation(self, thread_id: int) -> Optional[Dict[str, Any]]:
        conversation = self.conversations.get_conversation(thread_id)
        return asdict(conversation) if conversation else None

    def get_messages(self, thread_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        limit = min(int(limit), 200)
        return [asdict(m) for m in self.messages.get_messages(thread_id, limit=limit)]

    def get_badge(self) -> Dict[str, Any]:
        return {
            "badge":         self.badge.count,
            "shortcuts":     self.shortcuts.shortcuts(),
            "notifications": self.notification.pending(),
        }

    # ── MANAGE ───────────────────────────────────────────────────────────

    def set_active(self, thread_id: Optional[int]) -> None:
        self.active.set(thread_id)

    def block(self, address: str, reason: Optional[str] = None) -> None:
        self.blocklist.block(address, reason)

    def unblock(self, address: str) -> None:
        self.blocklist.unblock(address)

    def add_contact(self, name: str, address: str) -> Dict[str, Any]:
        return asdict(self.contacts.add_contact(name, address))

    def update_config(self, update: Dict[str, Any]) -> Dict[str, Any]:
        config = {**self.config, **(update or {})}
        save_config(config, self.project_root)
        self.config = config
        return config


def _frame(data: Dict[str, Any]) -> SmsFrame:
    if not data.get("address"):
        raise ValueError("Every SMS frame needs an address")
    return SmsFrame(
        address      = data["address"],
        body         = data.get("body"),
        timestamp_ms = int(data.get("timestamp_ms", 0)),
    )


def _result_dict(result) -> Dict[str, Any]:
    return {
        "outcome":         result.outcome.value,
        "conversation_id": result.conversation_id,
        "message_id":      result.message_id,
        "action":          result.action,
    }


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class FrameIn(BaseModel):
    address:      str
    body:         Optional[str] = None
    timestamp_ms: int = 0


class SmsIn(BaseModel):
    sub_id: int = -1
    frames: List[FrameIn] = []


class MmsIn(BaseModel):
    locator:      str
    sub_id:       int = -1
    address:      str
    body:         str = ""
    timestamp_ms: int = 0


class ActiveIn(BaseModel):
    thread_id: Optional[int] = None


class BlockRuleIn(BaseModel):
    address: str
    action:  str = "block"          # block / unblock
    reason:  Optional[str] = None


class ContactIn(BaseModel):
    name:    str
    address: str


def _build_app(
    db_path:      Path = Path("receiver.db"),
    api:          Optional[ReceiverAPI] = None,
) -> FastAPI:
    """Build and return the FastAPI application around one ReceiverAPI."""
    _api = api or ReceiverAPI(db_path=db_path)

    _app = FastAPI(
        title       = "mINd-RECEIVER API",
        description = "Inbound SMS/MMS ingestion — local API for transport bridges",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    # ── RECEIVE ─────────────────────────────────────────────────────────

    @_app.post("/sms", summary="Receive one SMS batch")
    def receive_sms(req: SmsIn):
        try:
            return _api.receive_sms(req.sub_id, [f.model_dump() for f in req.frames])
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except ReceiverError as exc:
            logger.error(f"SMS endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Processing failed: {exc}")

    @_app.post("/mms", summary="Receive one MMS")
    def receive_mms(req: MmsIn):
        try:
            return _api.receive_mms(
                locator      = req.locator,
                sub_id       = req.sub_id,
                address      = req.address,
                body         = req.body,
                timestamp_ms = req.timestamp_ms,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except ReceiverError as exc:
            logger.error(f"MMS endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Processing failed: {exc}")

    # ── QUERY ───────────────────────────────────────────────────────────

    @_app.get("/conversations", summary="List conversations")
    def get_conversations(
        include_archived: bool = Query(True),
        include_blocked:  bool = Query(True),
        limit:            int  = Query(100, ge=1, le=500),
    ):
        data = _api.get_conversations(
            include_archived = include_archived,
            include_blocked  = include_blocked,
            limit            = limit,
        )
        return {"count": len(data), "conversations": data}

    @_app.get("/conversations/{thread_id}", summary="Get single conversation")
    def get_conversation(thread_id: int):
        data = _api.get_conversation(thread_id)
        if data is None:
            raise HTTPException(status_code=404, detail=f"Conversation not found: {thread_id}")
        return data

    @_app.get("/conversations/{thread_id}/messages", summary="Messages of a thread")
    def get_messages(thread_id: int, limit: int = Query(50, ge=1, le=200)):
        data = _api.get_messages(thread_id, limit=limit)
        return {"count": len(data), "messages": data}

    @_app.get("/badge", summary="Badge, shortcuts and pending notifications")
    def get_badge():
        return _api.get_badge()

    # ── MANAGE ──────────────────────────────────────────────────────────

    @_app.put("/active", summary="Set the foreground conversation")
    def set_active(req: ActiveIn):
        _api.set_active(req.thread_id)
        return {"status": "ok", "thread_id": req.thread_id}

    @_app.post("/blocking", summary="Add a block or unblock rule")
    def add_block_rule(req: BlockRuleIn):
        try:
            if req.action == "block":
                _api.block(req.address, req.reason)
            elif req.action == "unblock":
                _api.unblock(req.address)
            else:
                raise ValueError(f"action must be 'block' or 'unblock', got {req.action!r}")
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"status": "ok"}

    @_app.post("/contacts", summary="Add a contact")
    def add_contact(req: ContactIn):
        try:
            return _api.add_contact(req.name, req.address)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @_app.get("/config", summary="Get config")
    def get_config():
        return {"config": _api.config}

    @_app.post("/config", summary="Save config")
    def save_config_endpoint(update: Dict[str, Any] = Body(default_factory=dict)):
        try:
            return {"status": "ok", "config": _api.update_config(update)}
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":  "ok",
            "db_path": str(_api.db_path),
            "version": __version__,
        }

    return _app


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT — python -m receiver.api
# ═══════════════════════════════════════════════════════════════════════════

def serve(db_path: Path, host: str = "127.0.0.1", port: int = 8766) -> None:
    import uvicorn

    server_app = _build_app(db_path=db_path)
    logger.info(f"Serving receiver API on http://{host}:{port} (db={db_path})")
    uvicorn.run(server_app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        prog        = "receiver.api",
        description = "mINd-RECEIVER API Server",
    )
    parser.add_argument("--port", type=int, default=8766,
                        help="Port to bind (default: 8766)")
    parser.add_argument("--db",   type=str, default="receiver.db",
                        help="Path to receiver.db (default: receiver.db)")
    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="Host to bind — DO NOT change to 0.0.0.0 on shared networks")
    args = parser.parse_args()

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )
    serve(Path(args.db), host=args.host, port=args.port)
