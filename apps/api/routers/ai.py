"""
AI API Endpoints

Progress analysis, note summaries and workout suggestions.

All endpoints sit behind the Session Gateway. Bodies are validated into
Valid/Invalid before the engine is touched; every failure is rendered as
{"error": "..."} by the app's exception handler.
"""
import json
import logging
from typing import Any, Type, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.auth import get_current_identity_id
from core.database import get_db
from core.exceptions import ValidationError
from schemas import (
    AnalysisResponse,
    ExerciseNotesSummaryRequest,
    Invalid,
    SuggestionResponse,
    SummaryResponse,
    TrainingNotesSummaryRequest,
    WorkoutSuggestionRequest,
    validate_body,
)
from services.ai_analysis import AIAnalysisEngine, get_ai_engine
from services.history_aggregator import DEFAULT_HISTORY_LIMIT, load_recent_history

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])

T = TypeVar("T", bound=BaseModel)


async def _read_body(request: Request, model: Type[T]) -> T:
    try:
        body: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")

    result = validate_body(model, body)
    if isinstance(result, Invalid):
        raise ValidationError(result.reason, field=result.field)
    return result.value


@router.post("/analyze-progress", response_model=AnalysisResponse)
async def analyze_progress(
    identity_id: UUID = Depends(get_current_identity_id),
    db: Session = Depends(get_db),
    engine: AIAnalysisEngine = Depends(get_ai_engine),
):
    """
    Analyze the caller's recent training progress.

    Loads the last trainings of the authenticated athlete only, flattens them
    and sends them to the inference provider. A history read failure stops
    the pipeline before the provider is called.
    """
    history = await run_in_threadpool(load_recent_history, db, identity_id, DEFAULT_HISTORY_LIMIT)
    analysis = await engine.analyze_progress(history)
    return {"analysis": analysis}


@router.post("/summarize-exercise-notes", response_model=SummaryResponse)
async def summarize_exercise_notes(
    request: Request,
    identity_id: UUID = Depends(get_current_identity_id),
    engine: AIAnalysisEngine = Depends(get_ai_engine),
):
    """Summarize the per-set notes of one exercise. Body: {exerciseName, setNotes}."""
    payload = await _read_body(request, ExerciseNotesSummaryRequest)
    summary = await engine.summarize_exercise_notes(payload.exercise_name, payload.set_notes)
    return {"summary": summary}


@router.post("/summarize-training-notes", response_model=SummaryResponse)
async def summarize_training_notes(
    request: Request,
    identity_id: UUID = Depends(get_current_identity_id),
    engine: AIAnalysisEngine = Depends(get_ai_engine),
):
    """Summarize the exercise notes of one training. Body: {exerciseNotes}."""
    payload = await _read_body(request, TrainingNotesSummaryRequest)
    summary = await engine.summarize_training_notes(payload.exercise_notes)
    return {"summary": summary}


@router.post("/workout-suggestion", response_model=SuggestionResponse)
async def workout_suggestion(
    request: Request,
    identity_id: UUID = Depends(get_current_identity_id),
    engine: AIAnalysisEngine = Depends(get_ai_engine),
):
    """
    Suggest a routine.

    Body: {goals, availableEquipment, duration, muscleGroups?}
    """
    payload = await _read_body(request, WorkoutSuggestionRequest)
    suggestion = await engine.generate_workout_suggestion(
        goals=payload.goals,
        available_equipment=payload.available_equipment,
        duration=payload.duration,
        muscle_groups=payload.muscle_groups,
    )
    return {"suggestion": suggestion}
