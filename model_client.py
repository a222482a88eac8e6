"""
Chat completion client for OpenAI-compatible endpoints (OpenAI, Deepseek,
OpenRouter, ...).

One synchronous POST per user message, no retries and no streaming. The
company data document is embedded in the system prompt on every call.
"""
from typing import Dict, List, Optional

import requests
import structlog

from errors import ChatbotError, TransportError, UpstreamShapeError, UpstreamStatusError
from models import ChatMessage, CompletionRequest, MessageRole
from utils import estimate_tokens, preview, to_json

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT_TEMPLATE = (
    "You are a virtual assistant that answers questions about a company. "
    "Only answer questions related to the company. "
    "Keep your answers clear and concise. "
    "If you do not know the answer, say that you do not have that information. "
    "Company data: {company_data}"
)

CONNECTION_TEST_MESSAGES = [
    ChatMessage(role=MessageRole.SYSTEM, content="You are a helpful assistant"),
    ChatMessage(role=MessageRole.USER, content="Reply with OK if you are working"),
]
CONNECTION_TEST_MAX_TOKENS = 50


def build_messages(user_message: str, history: List[Dict], company_data) -> List[ChatMessage]:
    """System prompt, then the stored turns in order, then the new message"""
    messages = [
        ChatMessage(
            role=MessageRole.SYSTEM,
            content=SYSTEM_PROMPT_TEMPLATE.format(company_data=to_json(company_data)),
        )
    ]
    for turn in history or []:
        messages.append(ChatMessage(role=turn["role"], content=turn["content"]))
    messages.append(ChatMessage(role=MessageRole.USER, content=user_message))
    return messages


def extract_reply(data) -> str:
    """Pull choices[0].message.content out of a completion response"""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise UpstreamShapeError("Unexpected response from the API")
    if not isinstance(content, str) or not content.strip():
        raise UpstreamShapeError("API response did not contain a reply")
    return content


class CompletionClient:
    """Calls the remote completion endpoint with the company context"""

    def __init__(self, api_url: str, api_key: str, model: str, cache,
                 max_tokens: int = 500, temperature: float = 0.7,
                 timeout: float = 30, test_timeout: float = 15):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.cache = cache
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.test_timeout = test_timeout

    @classmethod
    def from_config(cls, settings, cache) -> "CompletionClient":
        return cls(
            api_url=settings["API_URL"],
            api_key=settings["API_KEY"],
            model=settings["MODEL"],
            cache=cache,
            max_tokens=settings["MAX_TOKENS"],
            temperature=settings["TEMPERATURE"],
            timeout=settings["API_TIMEOUT"],
            test_timeout=settings["API_TEST_TIMEOUT"],
        )

    def _post(self, payload: dict, timeout: float) -> requests.Response:
        return requests.post(
            self.api_url,
            json=payload,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=timeout,
            verify=True,
        )

    def request_completion(self, user_message: str, history: List[Dict]) -> str:
        """Like complete() but raises the specific ChatbotError on failure"""
        company_data = self.cache.load()
        request = CompletionRequest(
            model=self.model,
            messages=build_messages(user_message, history, company_data),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        payload = request.to_payload()
        logger.info("Calling completion API",
                    model=self.model,
                    message_count=len(payload["messages"]),
                    estimated_tokens=estimate_tokens(payload["messages"]))

        try:
            response = self._post(payload, self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Request to completion API failed: {e}")

        if response.status_code != 200:
            raise UpstreamStatusError(response.status_code)

        try:
            data = response.json()
        except ValueError:
            raise UpstreamShapeError("API response is not valid JSON")
        return extract_reply(data)

    def complete(self, user_message: str, history: List[Dict]) -> Optional[str]:
        """Return the assistant reply, or None if anything went wrong"""
        try:
            reply = self.request_completion(user_message, history)
        except ChatbotError as e:
            logger.error("Completion failed",
                         error_type=type(e).__name__,
                         error=e.message,
                         question=preview(user_message))
            return None
        logger.info("Completion received", response_length=len(reply))
        return reply

    def test_connection(self) -> dict:
        """Send a tiny fixed request and report what came back"""
        payload = CompletionRequest(
            model=self.model,
            messages=CONNECTION_TEST_MESSAGES,
            temperature=self.temperature,
            max_tokens=CONNECTION_TEST_MAX_TOKENS,
        ).to_payload()
        try:
            response = self._post(payload, self.test_timeout)
        except requests.RequestException as e:
            logger.warning("Connection test failed", error=str(e))
            return {"success": False, "http_code": 0, "response": None, "error": str(e)}

        logger.info("Connection test finished", http_code=response.status_code)
        return {
            "success": response.status_code == 200,
            "http_code": response.status_code,
            "response": response.text,
            "error": "",
        }
