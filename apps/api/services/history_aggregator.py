"""
History Aggregator

Loads an athlete's most recent gym trainings with their nested exercises and
sets, and flattens them into the shape the AI Analysis Engine consumes:

    [{date, exercises: [{name, sets: [{weight, reps}]}]}]

Ordering contract:
- trainings newest-first (date, then creation time)
- exercises and sets in the order they were recorded

Each nesting level has its own mapping function and every one of them is
total: a missing exercise definition becomes "Unknown", missing collections
become empty lists.
"""
import logging
from typing import List
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.exceptions import HistoryUnavailableError
from models import ExerciseSet, GymTraining, TrainingExercise
from schemas import FlattenedHistory, HistoryExercise, HistoryRecord, HistorySet

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 30
UNKNOWN_EXERCISE_NAME = "Unknown"


def _map_set(exercise_set: ExerciseSet) -> HistorySet:
    weight = exercise_set.weight
    return HistorySet(
        weight=float(weight) if weight is not None else None,
        reps=exercise_set.reps,
    )


def _map_exercise_entry(entry: TrainingExercise) -> HistoryExercise:
    definition = entry.exercise
    name = definition.name if definition is not None and definition.name else UNKNOWN_EXERCISE_NAME
    return HistoryExercise(
        name=name,
        sets=[_map_set(s) for s in (entry.sets or [])],
    )


def _map_training(training: GymTraining) -> HistoryRecord:
    return HistoryRecord(
        date=training.date,
        exercises=[_map_exercise_entry(e) for e in (training.exercises or [])],
    )


def load_recent_history(
    db: Session,
    identity_id: UUID,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> FlattenedHistory:
    """
    Most recent ``limit`` trainings owned by ``identity_id``, flattened.

    Raises:
        ValueError: limit is not a positive integer
        HistoryUnavailableError: the data store could not be read
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")

    try:
        trainings: List[GymTraining] = (
            db.query(GymTraining)
            .options(
                selectinload(GymTraining.exercises).joinedload(TrainingExercise.exercise),
                selectinload(GymTraining.exercises).selectinload(TrainingExercise.sets),
            )
            .filter(GymTraining.user_id == identity_id)
            .order_by(GymTraining.date.desc(), GymTraining.created_at.desc())
            .limit(limit)
            .all()
        )
        history = [_map_training(t) for t in trainings]
    except SQLAlchemyError as e:
        logger.error(
            "Training history query failed",
            extra={"extra_fields": {"identity_id": str(identity_id), "error_type": type(e).__name__}},
        )
        raise HistoryUnavailableError() from e

    logger.debug(f"Loaded {len(history)} trainings for {identity_id}")
    return history

