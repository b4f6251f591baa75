"""HTTP server for inbound messages, feedback and memory inspection."""

import json
from typing import Any, Optional

from aiohttp import web
from loguru import logger
from pydantic import Field, ValidationError, model_validator

from meshbot import __version__
from meshbot.agent.router import ERROR_MESSAGE, MessageRouter
from meshbot.config.schema import Base
from meshbot.memory.learning import LearningManager
from meshbot.memory.store import MemoryStore

DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 50


class MessageRequest(Base):
    """Inbound message: `{userId, text, channelId}`."""
    user_id: str = Field(min_length=1)
    text: str = ""
    channel_id: str = "default"

    @classmethod
    def from_payload(cls, payload: Any) -> "MessageRequest":
        """Accept the flat form or a Bot Framework style activity (`from.id`)."""
        if isinstance(payload, dict) and "userId" not in payload and "user_id" not in payload:
            sender = payload.get("from")
            if isinstance(sender, dict) and sender.get("id"):
                payload = {
                    "user_id": sender["id"],
                    "text": payload.get("text") or "",
                    "channel_id": payload.get("channelId") or "default",
                }
        return cls.model_validate(payload)


class FeedbackRequest(Base):
    """Feedback: 1-5 satisfaction and/or free text."""
    user_id: str = Field(min_length=1)
    satisfaction: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None

    @model_validator(mode="after")
    def _require_content(self) -> "FeedbackRequest":
        if self.satisfaction is None and not (self.feedback or "").strip():
            raise ValueError("satisfaction or feedback is required")
        return self


def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


def _validation_message(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in error.errors()
    )


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn unexpected handler errors into a JSON apology."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unhandled error on {request.method} {request.path}: {e}")
        return web.json_response({"error": ERROR_MESSAGE}, status=500)


class MeshServer:
    """
    aiohttp application exposing the router and memory inspection.

    Args:
        router: Message router
        store: Memory store for inspection endpoints
        learning: Learning manager for feedback intake
        host: Bind address
        port: Bind port
    """

    def __init__(
        self,
        router: MessageRouter,
        store: MemoryStore,
        learning: LearningManager,
        host: str = "0.0.0.0",
        port: int = 3978,
    ):
        self.router = router
        self.store = store
        self.learning = learning
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/", self._handle_root)
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_post("/api/messages", self._handle_message)
        app.router.add_post("/api/feedback", self._handle_feedback)
        app.router.add_get("/api/users/{user_id}/profile", self._handle_profile)
        app.router.add_get("/api/users/{user_id}/history", self._handle_history)
        app.router.add_get("/api/stats", self._handle_stats)
        return app

    async def start(self) -> None:
        """Start serving."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Server listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Server stopped")

    async def _read_json(self, request: web.Request) -> Any:
        try:
            return await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise web.HTTPBadRequest(
                text=json.dumps({"error": "Invalid JSON body"}),
                content_type="application/json",
            )

    async def _handle_root(self, request: web.Request) -> web.Response:
        return web.json_response({
            "name": self.router.bot.name,
            "company": self.router.bot.company,
            "version": __version__,
            "skills": self.router.registry.names,
            "endpoints": [
                "POST /api/messages",
                "POST /api/feedback",
                "GET /api/users/{user_id}/profile",
                "GET /api/users/{user_id}/history",
                "GET /api/stats",
                "GET /healthz",
            ],
        })

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "version": __version__})

    async def _handle_message(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request)

        # Activities other than messages (typing, conversationUpdate) get no reply
        if isinstance(payload, dict) and payload.get("type", "message") != "message":
            return web.json_response({"status": "ignored"}, status=202)

        try:
            message = MessageRequest.from_payload(payload)
        except ValidationError as e:
            return _bad_request(_validation_message(e))

        response = await self.router.handle_message(message.user_id, message.text, message.channel_id)
        return web.json_response({
            "text": response.text,
            "source": response.source,
            "skill": response.skill_name,
        })

    async def _handle_feedback(self, request: web.Request) -> web.Response:
        payload = await self._read_json(request)
        try:
            feedback = FeedbackRequest.model_validate(payload)
        except ValidationError as e:
            return _bad_request(_validation_message(e))

        profile = self.learning.record_feedback(
            feedback.user_id, rating=feedback.satisfaction, text=feedback.feedback
        )
        return web.json_response({
            "status": "received",
            "satisfactionScore": profile.satisfaction_score,
            "feedbackCount": profile.feedback_count,
        })

    async def _handle_profile(self, request: web.Request) -> web.Response:
        user_id = request.match_info["user_id"]
        data = self.store.get_profile(user_id).to_dict()
        data["conversations_this_week"] = self.store.count_recent_turns(user_id, days=7)
        return web.json_response(data)

    async def _handle_history(self, request: web.Request) -> web.Response:
        raw = request.query.get("limit", str(DEFAULT_HISTORY_LIMIT))
        try:
            limit = int(raw)
        except ValueError:
            return _bad_request(f"limit must be an integer, got {raw!r}")
        if limit < 1 or limit > MAX_HISTORY_LIMIT:
            return _bad_request(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")

        user_id = request.match_info["user_id"]
        turns = self.store.get_history(user_id, limit)
        return web.json_response({
            "userId": user_id,
            "count": len(turns),
            "turns": [turn.to_dict() for turn in turns],
        })

    async def _handle_stats(self, request: web.Request) -> web.Response:
        stats = self.store.get_stats()
        stats["skills"] = self.router.registry.stats()
        return web.json_response(stats)
