"""Message routing and the completion fallback."""

from meshbot.agent.fallback import Completion, CompletionClient, static_fallback
from meshbot.agent.router import MessageRouter, RouterResponse

__all__ = ["Completion", "CompletionClient", "MessageRouter", "RouterResponse", "static_fallback"]
