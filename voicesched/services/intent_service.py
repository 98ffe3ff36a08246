from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError
from pydantic import ValidationError
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from voicesched.schemas.actions import INTENTS, load_action
from voicesched.services.errors import MalformedResponse, ParseError, ProviderError, ProviderTimeout
from voicesched.utils.config import (
    DEFAULT_WORKOUT_DURATION_MINUTES,
    MIN_CONFIDENCE_THRESHOLD,
    OPENAI_API_KEY,
    VOICE_LLM_MODEL,
    VOICE_PARSE_TIMEOUT_SECONDS,
)
from voicesched.utils.messages import MSG
from voicesched.utils.prompts import build_system_prompt

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


@dataclass
class ParsedIntent:
    """What the parser hands back: one validated action plus advisory signals."""

    action: object
    confidence: float
    needs_clarification: bool
    clarification_questions: list[str] = field(default_factory=list)


def strip_code_fences(text: str) -> str:
    return _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text.strip()))


def _read_confidence(value) -> float:
    # Missing or non-numeric confidence counts as no confidence at all
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return min(max(float(value), 0.0), 1.0)


def _read_questions(value) -> list[str]:
    if value is True:
        return [MSG.CLARIFY_GENERIC]
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(q) for q in value if q]
    return []


def interpret_response(raw: Optional[str]) -> ParsedIntent:
    """Validate raw model output into a ParsedIntent.

    The model's own judgement is not trusted: the intent, times and dates
    are checked here and anything else is a MalformedResponse.
    """
    if not raw or not raw.strip():
        raise MalformedResponse("Empty response from language model")

    json_str = strip_code_fences(raw)
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError:
        raise MalformedResponse(f"Failed to parse model JSON: {json_str[:200]}")

    if not isinstance(data, dict):
        raise MalformedResponse("Language model response is not a JSON object")

    intent = data.get("intent")
    if intent not in INTENTS:
        raise MalformedResponse(f"Unknown intent: {intent}")

    confidence = _read_confidence(data.pop("confidence", None))
    questions = _read_questions(data.pop("needs_clarification", None))

    if intent == "create_block" and not data.get("duration_minutes"):
        data["duration_minutes"] = DEFAULT_WORKOUT_DURATION_MINUTES

    try:
        action = load_action(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise MalformedResponse(f"Invalid {intent} action: {location} {first.get('msg')}".strip())

    if confidence < MIN_CONFIDENCE_THRESHOLD and not questions:
        questions.append(MSG.CLARIFY_GENERIC)

    return ParsedIntent(
        action=action,
        confidence=confidence,
        needs_clarification=bool(questions),
        clarification_questions=questions,
    )


class IntentService:
    """Turns a transcript into a proposed action using a chat model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, timeout: float = VOICE_PARSE_TIMEOUT_SECONDS):
        self.timeout = timeout
        self.client = client
        if self.client is None and OPENAI_API_KEY:
            self.client = AsyncOpenAI(api_key=OPENAI_API_KEY, timeout=timeout, max_retries=0)

    async def parse(self, transcript: str, timezone: str, now_local_iso: str) -> ParsedIntent:
        """
        Parse a transcript into exactly one proposed action.

        ``now_local_iso`` is already in the user's timezone, so relative
        expressions resolve without any timezone logic here.
        """
        if not self.client:
            raise ParseError("OPENAI_API_KEY is not configured")

        try:
            response = await self.client.chat.completions.create(
                model=VOICE_LLM_MODEL,
                messages=[
                    {"role": "system", "content": build_system_prompt(timezone, now_local_iso)},
                    {"role": "user", "content": transcript},
                ],
                response_format={"type": "json_object"},
                temperature=0.1,
                max_tokens=800,
                timeout=self.timeout,
            )
        except APITimeoutError:
            logger.warning(f"Intent parsing timed out after {self.timeout}s")
            raise ProviderTimeout("Language model request timed out")
        except APIStatusError as e:
            logger.error(f"Language model error: {e.status_code} {str(e)[:500]}")
            raise ProviderError(e.status_code, f"Language model request failed ({e.status_code})")
        except APIConnectionError as e:
            logger.error(f"Language model unreachable: {e}")
            raise ProviderError(None, "Language model unreachable")

        content = response.choices[0].message.content if response.choices else None
        parsed = interpret_response(content)
        logger.info(
            f"Parsed intent={parsed.action.intent} confidence={parsed.confidence:.2f} "
            f"needs_clarification={parsed.needs_clarification}"
        )
        return parsed


intent_service = IntentService()
