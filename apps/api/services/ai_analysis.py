"""
AI Analysis Engine

Turns training history and free-text notes into natural-language insight
using the Anthropic Messages API.

Operations:
- analyze_progress: progress analysis over the flattened training history
- summarize_exercise_notes: summary of the per-set notes of one exercise
- summarize_training_notes: summary of the exercise notes of one training
- generate_workout_suggestion: a routine built from goals and equipment

Every operation is attempted exactly once. Input shape and credentials are
checked before any network call. Provider failures are classified:

- ConfigurationError: ANTHROPIC_API_KEY missing
- ValidationError: malformed input
- ModelUnavailableError: provider error message mentions the model
- ProviderError: everything else
"""
import json
import logging
import time
from typing import Any, Callable, List, Optional, Sequence

from anthropic import AsyncAnthropic

from core.config import settings
from core.exceptions import ConfigurationError, ModelUnavailableError, ProviderError, ValidationError

logger = logging.getLogger(__name__)

# Substring in the provider's error message that marks a model problem
# (unknown identifier, deprecated or unavailable model).
MODEL_ERROR_MARKER = "model"


def _provider_error_message(exc: BaseException) -> Optional[str]:
    """
    Best-effort extraction of the provider's error message.

    Anthropic errors carry a body like {"error": {"type": ..., "message": ...}};
    anything else falls back to the exception's own message.
    """
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(body.get("message"), str):
            return body["message"]
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(exc)
    return text or None


def classify_provider_error(exc: BaseException) -> ProviderError:
    """Map a provider exception onto ModelUnavailableError or ProviderError."""
    message = _provider_error_message(exc)
    if message and MODEL_ERROR_MARKER in message:
        return ModelUnavailableError()
    return ProviderError(message)


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("must be a non-empty string", field=field)
    return value


def _require_string_sequence(value: Any, field: str) -> List[str]:
    # A bare string is iterable but is not a sequence of notes.
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise ValidationError("must be an array of strings", field=field)
    for item in value:
        if not isinstance(item, str):
            raise ValidationError("must be an array of strings", field=field)
    return list(value)


def _numbered(lines: Sequence[str]) -> str:
    if not lines:
        return "(no notes)"
    return "\n".join(f"{i}. {line}" for i, line in enumerate(lines, start=1))


def _history_to_json(history: Sequence[Any]) -> str:
    records = []
    for record in history:
        if hasattr(record, "model_dump"):
            records.append(record.model_dump(mode="json"))
        else:
            records.append(record)
    return json.dumps(records, indent=2, ensure_ascii=False, default=str)


def build_progress_prompt(history: Sequence[Any]) -> str:
    return (
        "Analyze the athlete's training progress based on their history "
        "(most recent training first):\n"
        f"{_history_to_json(history)}\n\n"
        "Provide insights on:\n"
        "- Strength/endurance progress\n"
        "- Areas for improvement\n"
        "- Recommendations to keep progressing"
    )


def build_exercise_notes_prompt(exercise_name: str, set_notes: Sequence[str]) -> str:
    return (
        "You are an expert strength coach. These are the notes the athlete wrote "
        f"for each set of the exercise \"{exercise_name}\", in order:\n"
        f"{_numbered(set_notes)}\n\n"
        "Summarize them in a short paragraph: how the sets felt, technique or "
        "discomfort issues mentioned, and anything to adjust next time."
    )


def build_training_notes_prompt(exercise_notes: Sequence[str]) -> str:
    return (
        "You are an expert strength coach. These are the notes the athlete wrote "
        "for the exercises of one training session, in order:\n"
        f"{_numbered(exercise_notes)}\n\n"
        "Summarize the session in a short paragraph: overall feeling, highlights, "
        "problems mentioned, and what to keep in mind for the next session."
    )


def build_workout_suggestion_prompt(
    goals: Sequence[str],
    available_equipment: Sequence[str],
    duration: int,
    muscle_groups: Optional[Sequence[str]] = None,
) -> str:
    lines = [
        "You are an expert personal trainer. Generate a training routine based on:",
        f"- Goals: {', '.join(goals)}",
        f"- Available equipment: {', '.join(available_equipment)}",
        f"- Duration: {duration} minutes",
    ]
    if muscle_groups:
        lines.append(f"- Muscle groups: {', '.join(muscle_groups)}")
    lines.append("")
    lines.append("Provide a structured routine with exercises and recommended sets and reps.")
    return "\n".join(lines)


class AIAnalysisEngine:
    """
    Stateless wrapper around the inference provider.

    Build one per request (see get_ai_engine). The client is created lazily
    so a missing credential is reported at call time, not at startup.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        self.model = model or settings.AI_MODEL
        self.max_tokens = max_tokens or settings.AI_MAX_TOKENS
        self._client_factory = client_factory or self._default_client
        self._client = None

    @staticmethod
    def _default_client(api_key: str) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=api_key,
            timeout=settings.AI_REQUEST_TIMEOUT_S,
            max_retries=0,
        )

    def _get_client(self):
        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY", capability="AI analysis")
        if self._client is None:
            self._client = self._client_factory(self.api_key)
        return self._client

    async def _complete(self, prompt: str, operation: str) -> str:
        client = self._get_client()
        started = time.time()
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            classified = classify_provider_error(e)
            logger.warning(
                f"AI provider call failed: {operation}",
                extra={
                    "extra_fields": {
                        "operation": operation,
                        "model": self.model,
                        "error_type": type(e).__name__,
                        "classified_as": classified.error_code,
                    }
                },
            )
            raise classified from e

        text = "".join(
            getattr(block, "text", "")
            for block in (getattr(response, "content", None) or [])
            if getattr(block, "type", None) == "text"
        )
        if not text:
            raise ProviderError("AI provider returned an empty response")

        usage = getattr(response, "usage", None)
        logger.info(
            f"AI provider call completed: {operation}",
            extra={
                "extra_fields": {
                    "operation": operation,
                    "model": self.model,
                    "duration_ms": round((time.time() - started) * 1000, 2),
                    "input_tokens": getattr(usage, "input_tokens", None),
                    "output_tokens": getattr(usage, "output_tokens", None),
                }
            },
        )
        return text

    async def analyze_progress(self, history: Sequence[Any]) -> str:
        if isinstance(history, (str, bytes)) or not isinstance(history, (list, tuple)):
            raise ValidationError("must be an array of trainings", field="history")
        return await self._complete(build_progress_prompt(history), "analyze_progress")

    async def summarize_exercise_notes(self, exercise_name: str, set_notes: Sequence[str]) -> str:
        exercise_name = _require_text(exercise_name, "exerciseName")
        set_notes = _require_string_sequence(set_notes, "setNotes")
        return await self._complete(
            build_exercise_notes_prompt(exercise_name, set_notes), "summarize_exercise_notes"
        )

    async def summarize_training_notes(self, exercise_notes: Sequence[str]) -> str:
        exercise_notes = _require_string_sequence(exercise_notes, "exerciseNotes")
        return await self._complete(
            build_training_notes_prompt(exercise_notes), "summarize_training_notes"
        )

    async def generate_workout_suggestion(
        self,
        goals: Sequence[str],
        available_equipment: Sequence[str],
        duration: int,
        muscle_groups: Optional[Sequence[str]] = None,
    ) -> str:
        goals = _require_string_sequence(goals, "goals")
        available_equipment = _require_string_sequence(available_equipment, "availableEquipment")
        if muscle_groups is not None:
            muscle_groups = _require_string_sequence(muscle_groups, "muscleGroups")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError("must be a positive number of minutes", field="duration")
        return await self._complete(
            build_workout_suggestion_prompt(goals, available_equipment, duration, muscle_groups),
            "generate_workout_suggestion",
        )


def get_ai_engine() -> AIAnalysisEngine:
    """Factory function for dependency injection."""
    return AIAnalysisEngine()
