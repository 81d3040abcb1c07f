from dataclasses import dataclass
from datetime import date
from typing import Any, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as PydanticValidationError


# --- Flattened training history (AI input) ---

class HistorySet(BaseModel):
    weight: Optional[float] = None
    reps: Optional[int] = Field(default=None, ge=0)


class HistoryExercise(BaseModel):
    name: str
    sets: List[HistorySet] = Field(default_factory=list)


class HistoryRecord(BaseModel):
    date: date
    exercises: List[HistoryExercise] = Field(default_factory=list)


FlattenedHistory = List[HistoryRecord]


# --- AI endpoint request bodies ---

class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExerciseNotesSummaryRequest(_CamelBody):
    exercise_name: StrictStr = Field(alias="exerciseName", min_length=1)
    set_notes: List[StrictStr] = Field(alias="setNotes")


class TrainingNotesSummaryRequest(_CamelBody):
    exercise_notes: List[StrictStr] = Field(alias="exerciseNotes")


class WorkoutSuggestionRequest(_CamelBody):
    goals: List[StrictStr] = Field(min_length=1)
    available_equipment: List[StrictStr] = Field(alias="availableEquipment", min_length=1)
    duration: int = Field(gt=0, le=600)  # minutes
    muscle_groups: Optional[List[StrictStr]] = Field(default=None, alias="muscleGroups")


# --- AI endpoint responses ---

class AnalysisResponse(BaseModel):
    analysis: str


class SummaryResponse(BaseModel):
    summary: str


class SuggestionResponse(BaseModel):
    suggestion: str


class LogoutResponse(BaseModel):
    success: bool = True


# --- Body validation ---

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class Valid(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    reason: str
    field: Optional[str] = None

    @property
    def message(self) -> str:
        return f"{self.field}: {self.reason}" if self.field else self.reason


def validate_body(model: Type[T], body: Any) -> Union[Valid[T], Invalid]:
    """
    Validate a decoded JSON body against ``model``.

    Returns Valid(instance) or Invalid(reason) for the first failing field,
    so every endpoint reports shape errors the same way.
    """
    if not isinstance(body, dict):
        return Invalid(reason="Request body must be a JSON object")
    try:
        return Valid(model.model_validate(body))
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        return Invalid(reason=first.get("msg", "Invalid value"), field=field)
