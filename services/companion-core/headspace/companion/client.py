"""HTTP clients for the summarization and conversation APIs."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from ..errors import ExternalApiFailure, MalformedResponse
from ..schemas.conversation import ConversationRequest, SummarizeRequest

logger = logging.getLogger(__name__)


@dataclass
class ApiReply:
    """A 2xx answer from the conversation API, unwrapped but not yet parsed."""

    text: str
    payload: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None


def _unwrap_candidate(candidate: Any, response: httpx.Response) -> ApiReply:
    if not isinstance(candidate, dict):
        return ApiReply(text=response.text)
    finish_reason = candidate.get("finishReason")
    if not isinstance(finish_reason, str):
        finish_reason = None
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    first = parts[0] if isinstance(parts, list) and parts else None
    text = first.get("text") if isinstance(first, dict) else None
    if not isinstance(text, str):
        logger.warning("Conversation reply candidate has an unexpected shape")
        return ApiReply(text=response.text, finish_reason=finish_reason)
    return ApiReply(text=text, finish_reason=finish_reason)


def _unwrap_reply(response: httpx.Response) -> ApiReply:
    try:
        body = response.json()
    except ValueError:
        return ApiReply(text=response.text)

    if isinstance(body, dict):
        candidates = body.get("candidates")
        if isinstance(candidates, list) and candidates:
            # Raw model shape: candidates[0].content.parts[0].text
            return _unwrap_candidate(candidates[0], response)
        finish_reason = body.get("finishReason")
        return ApiReply(text=response.text, payload=body, finish_reason=finish_reason if isinstance(finish_reason, str) else None)
    if isinstance(body, str):
        return ApiReply(text=body)
    return ApiReply(text=response.text)


class ExternalApiClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._settings = settings
        self._transport = transport

    async def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.api_base_url,
                timeout=self._settings.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=body, headers={"Content-Type": "application/json"})
        except httpx.HTTPError as error:
            raise ExternalApiFailure(f"Request to {path} failed: {error}") from error

        if not response.is_success:
            raise ExternalApiFailure(f"API call failed with status: {response.status_code}", status_code=response.status_code)
        return response

    async def summarize(self, journal_text: str, mood: str) -> str:
        request = SummarizeRequest(journalText=journal_text, moodScale=mood)
        response = await self._post(self._settings.summarize_path, request.model_dump())
        try:
            body = response.json()
        except ValueError as error:
            raise MalformedResponse("Summary response is not JSON", status_code=response.status_code) from error
        summary = body.get("summary") if isinstance(body, dict) else None
        if not isinstance(summary, str) or not summary.strip():
            raise MalformedResponse("Summary response has no summary text", status_code=response.status_code)
        return summary.strip()

    async def converse(self, request: ConversationRequest) -> ApiReply:
        response = await self._post(self._settings.conversation_path, request.model_dump())
        return _unwrap_reply(response)
