"""
Utility functions for the company chatbot
"""
import json
from typing import Dict, List, Optional, Tuple


def validate_message(text: Optional[str]) -> Tuple[bool, str]:
    """Return (is_valid, trimmed_text) for a user message"""
    if text is None:
        return False, ""
    trimmed = text.strip()
    if not trimmed:
        return False, ""
    return True, trimmed


def estimate_tokens(messages: List[Dict]) -> int:
    """Rough token estimation for log lines"""
    total_chars = sum(len(msg.get('content', '')) for msg in messages)
    # Rough approximation: ~4 characters per token
    return total_chars // 4


def preview(text: str, limit: int = 100) -> str:
    """First `limit` characters of text, for logging"""
    if text is None:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def safe_json_loads(json_str, default=None):
    """Safely parse JSON with fallback"""
    try:
        return json.loads(json_str)
    except (json.JSONDecodeError, TypeError):
        return default


def to_json(data) -> str:
    """Serialize to JSON keeping non-ASCII text and slashes readable"""
    return json.dumps(data, ensure_ascii=False)
