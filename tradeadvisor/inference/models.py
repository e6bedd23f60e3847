"""Models for provider completion requests and responses."""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from tradeadvisor.inference.exceptions import MalformedResponseError


class ChatMessage(BaseModel):
    """A single chat message."""

    role: Literal["system", "user", "assistant"] = "user"
    content: str


class CompletionRequest(BaseModel):
    """OpenAI-compatible chat completion request body."""

    messages: List[ChatMessage]
    model: str
    stream: bool = False

    def signing_content(self) -> str:
        """Serialize the messages the way the billing headers are signed.

        Compact separators and raw unicode keep the bytes identical to a
        browser ``JSON.stringify`` of the same list.
        """
        return serialize_messages(self.messages)

    def to_payload(self) -> Dict[str, Any]:
        """Request body for the completion endpoint."""
        return self.model_dump()


class TransportResponse(BaseModel):
    """Raw HTTP response from a provider."""

    status_code: int
    reason: Optional[str] = None
    json_body: Any = None

    @property
    def ok(self) -> bool:
        """True for 2xx responses."""
        return 200 <= self.status_code < 300


class InferenceResult(BaseModel):
    """Parsed completion: provider request id and response text."""

    request_id: Optional[str] = None
    content: str
    model: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=dict)


def serialize_messages(messages: List[ChatMessage]) -> str:
    """Compact JSON for a list of chat messages."""
    return json.dumps(
        [m.model_dump() for m in messages],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def parse_completion(body: Any) -> InferenceResult:
    """Extract the first choice's content and the request id.

    Args:
        body: Decoded JSON response body

    Returns:
        InferenceResult with content and optional request id

    Raises:
        MalformedResponseError: If there is no first choice with message content
    """
    if not isinstance(body, dict):
        raise MalformedResponseError("Provider response is not a JSON object")

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise MalformedResponseError("Provider response has no choices")

    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise MalformedResponseError("First choice has no message")

    content = message.get("content")
    if not isinstance(content, str):
        raise MalformedResponseError("First choice message has no content")

    request_id = body.get("id")
    usage = body.get("usage")
    return InferenceResult(
        request_id=str(request_id) if request_id else None,
        content=content,
        model=body.get("model"),
        usage=usage if isinstance(usage, dict) else {},
    )
