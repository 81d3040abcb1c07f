from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, Float, Text, Index, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid


class Athlete(Base):
    """An authenticated end-user (the identity owning trainings and sessions)."""
    __tablename__ = "athlete"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=True)
    display_name = Column(Text, nullable=True)

    trainings = relationship("GymTraining", back_populates="athlete")
    sessions = relationship("AuthSession", back_populates="athlete")


class AuthSession(Base):
    """
    Server side half of an access/refresh token pair.

    The refresh token itself is never stored, only its SHA-256 hash. Rotation
    replaces the hash in place (single-row update).
    """
    __tablename__ = "auth_session"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    athlete_id = Column(Uuid(as_uuid=True), ForeignKey("athlete.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash = Column(Text, nullable=False, unique=True)
    refresh_expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)

    athlete = relationship("Athlete", back_populates="sessions")


class Exercise(Base):
    """Exercise definition referenced by training entries."""
    __tablename__ = "exercise"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class GymTraining(Base):
    """One gym training session."""
    __tablename__ = "gym_training"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("athlete.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    athlete = relationship("Athlete", back_populates="trainings")
    exercises = relationship(
        "TrainingExercise",
        back_populates="training",
        order_by=lambda: [TrainingExercise.order_index, TrainingExercise.id],
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_gym_training_user_date", "user_id", "date"),
    )


class TrainingExercise(Base):
    """Exercise performed within a training, in recorded order."""
    __tablename__ = "training_exercise"

    id = Column(Integer, primary_key=True, autoincrement=True)
    training_id = Column(Uuid(as_uuid=True), ForeignKey("gym_training.id", ondelete="CASCADE"), nullable=False, index=True)
    # Nullable: the definition may have been deleted.
    exercise_id = Column(Uuid(as_uuid=True), ForeignKey("exercise.id", ondelete="SET NULL"), nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    training = relationship("GymTraining", back_populates="exercises")
    exercise = relationship("Exercise")
    sets = relationship(
        "ExerciseSet",
        back_populates="training_exercise",
        order_by=lambda: [ExerciseSet.set_order, ExerciseSet.id],
        cascade="all, delete-orphan",
    )


class ExerciseSet(Base):
    """A single set: weight (unit-less here) and repetitions."""
    __tablename__ = "exercise_set"

    id = Column(Integer, primary_key=True, autoincrement=True)
    training_exercise_id = Column(Integer, ForeignKey("training_exercise.id", ondelete="CASCADE"), nullable=False, index=True)
    set_order = Column(Integer, nullable=False, default=0)
    weight = Column(Float, nullable=True)
    reps = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    training_exercise = relationship("TrainingExercise", back_populates="sets")

    __table_args__ = (
        CheckConstraint("reps IS NULL OR reps >= 0", name="ck_exercise_set_reps_non_negative"),
    )
