"""Strategy advice from a generative-text endpoint."""

from typing import Any, Sequence

import httpx

from api.logging_utils import get_logger
from config import AdviceConfig, config
from core.cards import rank_name
from core.hand import score

logger = get_logger(__name__)

PROMPT_TEMPLATE = """You are a professional blackjack advisor helping a beginner player.

Current Game State:
- Player's hand: {hand} (Total: {total})
- Dealer's visible card: {dealer_card}

Provide advice on whether the player should HIT or STAND. Your response should:
1) Start with a clear recommendation: "You should HIT" or "You should STAND"
2) Explain why in 20-30 words using simple, beginner-friendly terms
3) Avoid complex gambling terminology
4) Be encouraging and educational"""


class AdviceError(Exception):
    """Advice could not be produced; the message is safe to show the player."""


def build_prompt(player_hand: Sequence[int], dealer_card: int) -> str:
    """Render the advice prompt for a hand and the dealer's upcard."""
    return PROMPT_TEMPLATE.format(
        hand=", ".join(rank_name(rank) for rank in player_hand),
        total=score(player_hand),
        dealer_card=rank_name(dealer_card),
    )


def extract_text(data: Any) -> str:
    """
    Pull the advice text out of a generateContent response.

    Raises:
        AdviceError: If the model stopped early or returned no text
    """
    if not isinstance(data, dict):
        raise AdviceError("Advice service returned an invalid response.")

    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        candidates = []
    candidate = candidates[0] if candidates else {}
    if not isinstance(candidate, dict):
        raise AdviceError("Advice service returned an invalid response.")

    finish = candidate.get("finishReason")
    if finish and finish != "STOP":
        ratings = candidate.get("safetyRatings")
        if not isinstance(ratings, list):
            ratings = []
        safety = ", ".join(
            f"{r.get('category')}:{r.get('probability')}" for r in ratings if isinstance(r, dict)
        )
        detail = f"; safety={safety}" if safety else ""
        raise AdviceError(f"Model didn't return text (finishReason={finish}{detail}).")

    content = candidate.get("content")
    if isinstance(content, dict):
        parts = content.get("parts")
        if not isinstance(parts, list):
            parts = []
        text = "\n".join(
            p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
        )
        if text.strip():
            return text.strip()

    # Rare response shapes put the text directly on the content or top level
    fallback = content if isinstance(content, str) else data.get("text")
    if not isinstance(fallback, str) or not fallback.strip():
        raise AdviceError("No response text from model.")
    return fallback.strip()


class AdviceClient:
    """Thin async client for the advice endpoint."""

    def __init__(
        self,
        settings: AdviceConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Endpoint, key and generation parameters
            transport: Custom httpx transport (tests use MockTransport)
        """
        self._settings = settings or config.advice
        self._transport = transport

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._settings.temperature,
                "topK": self._settings.top_k,
                "topP": self._settings.top_p,
                "maxOutputTokens": self._settings.max_output_tokens,
            },
        }

    async def get_advice(self, player_hand: Sequence[int], dealer_card: int) -> str:
        """
        Ask for HIT/STAND advice.

        Raises:
            AdviceError: On any failure, with a player-facing message
        """
        if not self._settings.api_key:
            raise AdviceError("Advice is unavailable: no API key configured.")

        prompt = build_prompt(player_hand, dealer_card)
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._settings.timeout,
            ) as client:
                response = await client.post(
                    self._settings.endpoint,
                    json=self._payload(prompt),
                    headers={"x-goog-api-key": self._settings.api_key},
                )
        except httpx.HTTPError as exc:
            logger.warning("Advice request failed: %s", exc)
            raise AdviceError("Could not reach the advice service.") from exc

        if response.status_code == 403:
            raise AdviceError("Permission denied. Enable the Generative Language API for this project.")
        if response.status_code == 404:
            raise AdviceError("Model not found for this key.")
        if response.is_error:
            message = f"API request failed: {response.status_code}"
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict) and error.get("message"):
                message += f" - {error['message']}"
            logger.warning("Advice endpoint error: %s", message)
            raise AdviceError(message)

        try:
            data = response.json()
        except ValueError as exc:
            raise AdviceError("Advice service returned an invalid response.") from exc

        logger.debug("Advice raw response: %s", data)
        return extract_text(data)


# Global client instance
_advice_client: AdviceClient | None = None


def get_advice_client() -> AdviceClient:
    """Get or create the advice client."""
    global _advice_client
    if _advice_client is None:
        _advice_client = AdviceClient()
    return _advice_client
