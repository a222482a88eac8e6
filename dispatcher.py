"""
Action dispatch for the chat endpoint.

POST bodies carry an `action` field (send_message, load_history,
clear_history). Two admin side-channels are driven by the query string
instead: `?test_connection` and `?clear_cache=true`.
"""
import uuid
from typing import Mapping, MutableMapping, Tuple

import structlog

from conversation import ConversationStore
from errors import (
    ChatbotError, EmptyMessageError, InvalidActionError, MethodNotAllowedError,
    MissingActionError, UpstreamError,
)
from utils import preview, validate_message

logger = structlog.get_logger(__name__)

SESSION_ID_KEY = "session_id"


class ChatDispatcher:
    """Turns one request into a JSON payload and HTTP status"""

    def __init__(self, cache, client):
        self.cache = cache
        self.client = client
        self._actions = {
            "send_message": self.send_message,
            "load_history": self.load_history,
            "clear_history": self.clear_history,
        }

    def handle(self, method: str, query: Mapping, form: Mapping,
               session: MutableMapping) -> Tuple[dict, int]:
        try:
            return self._dispatch(method, query, form, session), 200
        except ChatbotError as e:
            logger.warning("Request failed",
                           session_id=session.get(SESSION_ID_KEY),
                           error_type=type(e).__name__,
                           error=e.message,
                           status_code=e.status_code)
            return {"success": False, "message": e.message}, e.status_code or 500

    def _dispatch(self, method, query, form, session) -> dict:
        if "test_connection" in query:
            return self.client.test_connection()

        if query.get("clear_cache") == "true":
            return {
                "success": self.cache.invalidate(),
                "message": "Cache cleared successfully",
            }

        if method != "POST":
            raise MethodNotAllowedError()

        action = form.get("action")
        if not action:
            raise MissingActionError()

        handler = self._actions.get(action)
        if handler is None:
            raise InvalidActionError(f"Invalid action: {action}")
        session_id = session.setdefault(SESSION_ID_KEY, uuid.uuid4().hex)
        return handler(form, ConversationStore(session), logger.bind(session_id=session_id))

    def send_message(self, form: Mapping, store: ConversationStore, log) -> dict:
        is_valid, message = validate_message(form.get("message"))
        if not is_valid:
            raise EmptyMessageError()

        history = store.all()
        log.info("Processing message",
                 question=preview(message),
                 question_length=len(message),
                 history_length=len(history))

        reply = self.client.complete(message, history)
        if reply is None:
            raise UpstreamError()

        store.append_exchange(message, reply)
        return {"success": True, "response": reply, "history": store.all()}

    def load_history(self, form: Mapping, store: ConversationStore, log) -> dict:
        return {"success": True, "history": store.all()}

    def clear_history(self, form: Mapping, store: ConversationStore, log) -> dict:
        store.clear()
        log.info("Conversation history cleared")
        return {"success": True, "message": "History cleared"}
