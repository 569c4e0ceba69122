"""Identity verification through the Gemini ``generateContent`` REST API.

Both images are sent inline (base64 JPEG) together with a comparison prompt;
the model is asked to answer with a JSON object. Replies without JSON fall
back to a keyword heuristic. Transport and parse failures come back as a
non-match with zero confidence rather than an exception.
"""
from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Optional

import httpx

from core.errors import MissingCredential
from core.events import VerificationResult

logger = logging.getLogger(__name__)

PROMPT = """
Compare these two images to determine if they show the same person.

Please analyze facial features, structure, and distinctive characteristics.

Respond with a JSON object containing:
- isMatch: boolean (true if same person, false if different)
- confidence: number (0-100, how confident you are in the match)
- reason: string (brief explanation of your decision)

Be strict in verification - only return true if you're confident it's the same person.
"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

TECHNICAL_FAILURE = "Verification failed due to technical error"


class GeminiVerifier:
    """Implements the IdentityVerifier contract."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = "gemini-1.5-flash",
        endpoint: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def set_api_key(self, api_key: str) -> None:
        self.api_key = api_key

    async def verify_identity(self, reference: bytes, live_frame: bytes) -> VerificationResult:
        if not self.api_key:
            raise MissingCredential("verifier API key not set")

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": PROMPT},
                        {"inline_data": {"mime_type": "image/jpeg", "data": _b64(reference)}},
                        {"inline_data": {"mime_type": "image/jpeg", "data": _b64(live_frame)}},
                    ]
                }
            ]
        }
        url = f"{self.endpoint}/models/{self.model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, params={"key": self.api_key}, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("verification request failed: %s", exc)
            return VerificationResult(is_match=False, confidence=0, reason=TECHNICAL_FAILURE)

        return parse_reply(_reply_text(data))


def parse_reply(text: str) -> VerificationResult:
    """Turn the model's free-text reply into a :class:`VerificationResult`."""

    match = _JSON_OBJECT.search(text)
    if match:
        try:
            verdict = json.loads(match.group(0))
        except json.JSONDecodeError:
            verdict = None
        if isinstance(verdict, dict):
            return VerificationResult(
                is_match=bool(verdict.get("isMatch", False)),
                confidence=_clamp_confidence(verdict.get("confidence", 0)),
                reason=str(verdict.get("reason") or "Unable to determine match"),
            )

    lowered = text.lower()
    is_match = "true" in lowered and "false" not in lowered
    return VerificationResult(
        is_match=is_match,
        confidence=85 if is_match else 15,
        reason=text[:200],
    )


def _reply_text(data: Any) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def _clamp_confidence(value: Any) -> int:
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return 0


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
