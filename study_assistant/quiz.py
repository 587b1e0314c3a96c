"""Quiz generation, grading, and topic mastery tracking.

Generation samples substantial chunks from the user's completed documents, asks
the model for structured questions and stores them as a QuizBlueprint with
QuizItems. Grading compares submitted answers with stored ones by exact string
equality and records a QuizAttempt, then makes a best-effort mastery update.

Two simplifications are kept as explicit, swappable policies:
- AttributionStrategy decides which source chunk a question is attributed to
  (RoundRobinAttribution: item i -> chunk[i mod N]).
- TopicLabeler decides which topic a graded quiz counts towards
  (BlueprintTitleTopic: the quiz title; there is no real topic extraction).

The mastery blend is asymmetric: stored mastery is averaged with the new value
while confidence is overwritten. Both rules live in blend_mastery /
blend_confidence and still await product confirmation.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from study_assistant.config import settings
from study_assistant.errors import BlueprintNotFound, GenerationUnavailable, NoSourceMaterial
from study_assistant.generation import generate_quiz_questions
from study_assistant.models import QuizAttempt, QuizBlueprint, QuizItem, TopicMastery, utcnow
from study_assistant.obs import span
from study_assistant.retrieval import RetrievedChunk, sample_chunks_for_quiz

logger = logging.getLogger(__name__)


# --- policies -----------------------------------------------------------------

class AttributionStrategy(ABC):
    """Chooses the source chunk credited for a generated question."""

    @abstractmethod
    def assign(self, item_index: int, chunks: Sequence[RetrievedChunk]) -> Optional[int]:
        ...


class RoundRobinAttribution(AttributionStrategy):
    """Item i is attributed to chunk i mod N, so every item has some source."""

    def assign(self, item_index: int, chunks: Sequence[RetrievedChunk]) -> Optional[int]:
        if not chunks:
            return None
        return chunks[item_index % len(chunks)].chunk_id


class TopicLabeler(ABC):
    """Chooses the topic a graded quiz contributes to."""

    @abstractmethod
    def label(self, blueprint: QuizBlueprint) -> Optional[str]:
        ...


class BlueprintTitleTopic(TopicLabeler):
    def label(self, blueprint: QuizBlueprint) -> Optional[str]:
        return (blueprint.title or "").strip() or None


def is_correct(submitted: Any, expected: str) -> bool:
    """Exact string equality; case and whitespace are significant."""
    return submitted == expected


def score_percentage(correct: int, total: int) -> int:
    """round(correct / total * 100), rounding halves up; 0 when there are no questions."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def mastery_from_score(score: int) -> Tuple[float, float]:
    """Map a 0-100 score to (mastery_level, confidence_score)."""
    mastery = score / 100
    return mastery, max(0.1, mastery - 0.1)


def blend_mastery(stored, incoming):
    """New mastery after a repeat attempt: unweighted average of stored and incoming.

    Works on floats and on SQL column expressions alike.
    """
    return (stored + incoming) / 2


def blend_confidence(stored, incoming):
    """New confidence after a repeat attempt: the incoming value replaces the stored one."""
    return incoming


# --- generation -----------------------------------------------------------------

@dataclass
class QuizOptions:
    title: str = "Generated Quiz"
    description: Optional[str] = None
    difficulty: str = "medium"
    question_count: int = field(default_factory=lambda: settings.DEFAULT_QUESTION_COUNT)


def _quiz_context(chunks: Sequence[RetrievedChunk]) -> str:
    return "\n\n---\n\n".join(f"[From: {c.document_name}]\n{c.content}" for c in chunks)


def generate_quiz(
    db: Session,
    user_id: int,
    options: QuizOptions,
    attribution: Optional[AttributionStrategy] = None,
) -> QuizBlueprint:
    """Generate and store a quiz from the user's documents.

    Args:
        db: SQLAlchemy session.
        user_id: Owner of the quiz and of the source documents.
        options: Title, description, difficulty and requested question count.
        attribution: Source attribution policy (default RoundRobinAttribution).

    Returns:
        QuizBlueprint: The committed blueprint; blueprint.items holds at least one question.

    Raises:
        NoSourceMaterial: The user has no completed chunks long enough to quiz on.
        GenerationUnavailable: The model call failed; nothing is stored.
    """
    attribution = attribution or RoundRobinAttribution()
    count = max(1, options.question_count)

    chunks = sample_chunks_for_quiz(db, user_id, count)
    if not chunks:
        raise NoSourceMaterial()

    blueprint = QuizBlueprint(
        user_id=user_id,
        title=options.title,
        description=options.description,
        source_chunk_ids=[c.chunk_id for c in chunks],
        difficulty=options.difficulty,
    )
    db.add(blueprint)
    db.flush()

    try:
        with span("quiz.generate", {"user_id": user_id, "sources": len(chunks), "questions": count}):
            questions = generate_quiz_questions(_quiz_context(chunks), count, options.difficulty)
    except GenerationUnavailable:
        logger.error("Quiz generation failed for user %s", user_id)
        db.rollback()
        raise

    for i, q in enumerate(questions):
        db.add(
            QuizItem(
                blueprint_id=blueprint.id,
                question=q.question,
                question_type=q.type.value,
                options=list(q.options),
                correct_answer=q.correct_answer,
                explanation=q.explanation,
                source_chunk_id=attribution.assign(i, chunks),
            )
        )
    db.commit()
    db.refresh(blueprint)
    logger.info("Generated quiz %s with %d questions for user %s", blueprint.id, len(questions), user_id)
    return blueprint


def get_blueprint(db: Session, user_id: int, blueprint_id: int) -> QuizBlueprint:
    """Return the user's blueprint or raise BlueprintNotFound."""
    blueprint = db.get(QuizBlueprint, blueprint_id)
    if blueprint is None or blueprint.user_id != user_id:
        raise BlueprintNotFound(blueprint_id)
    return blueprint


def get_quiz_questions(db: Session, user_id: int, blueprint_id: int) -> List[QuizItem]:
    get_blueprint(db, user_id, blueprint_id)
    stmt = select(QuizItem).where(QuizItem.blueprint_id == blueprint_id).order_by(QuizItem.id)
    return list(db.scalars(stmt))


def list_blueprints(db: Session, user_id: int) -> List[Tuple[QuizBlueprint, int]]:
    """The user's quizzes, newest first, with their question counts."""
    stmt = (
        select(QuizBlueprint, func.count(QuizItem.id))
        .outerjoin(QuizItem, QuizItem.blueprint_id == QuizBlueprint.id)
        .where(QuizBlueprint.user_id == user_id)
        .group_by(QuizBlueprint.id)
        .order_by(QuizBlueprint.created_at.desc(), QuizBlueprint.id.desc())
    )
    return [(bp, n) for bp, n in db.execute(stmt)]


# --- grading ----------------------------------------------------------------------

@dataclass
class GradingResult:
    attempt_id: int
    score: int
    correct_count: int
    total_questions: int
    graded_answers: Dict[str, Dict[str, Any]]


def grade_quiz_attempt(
    db: Session,
    user_id: int,
    blueprint_id: int,
    answers: Mapping[Any, Any],
    time_taken: Optional[int] = None,
    topic_labeler: Optional[TopicLabeler] = None,
) -> GradingResult:
    """Grade a submission and record the attempt.

    Questions are graded in id order regardless of the submission's order.
    Unanswered questions count as incorrect.

    Args:
        db: SQLAlchemy session.
        user_id: The submitting user; must own the blueprint.
        blueprint_id: Quiz being answered.
        answers: Mapping of question id (int or str) to submitted answer.
        time_taken: Elapsed seconds reported by the client.
        topic_labeler: Topic policy for the mastery update (default BlueprintTitleTopic).

    Returns:
        GradingResult: Attempt id, score, counts and per-question detail.

    Raises:
        BlueprintNotFound: The quiz does not belong to the user.
    """
    blueprint = get_blueprint(db, user_id, blueprint_id)
    items = get_quiz_questions(db, user_id, blueprint_id)
    submitted_by_id = {str(k): v for k, v in (answers or {}).items()}

    correct_count = 0
    graded: Dict[str, Dict[str, Any]] = {}
    for item in items:
        submitted = submitted_by_id.get(str(item.id))
        correct = is_correct(submitted, item.correct_answer)
        if correct:
            correct_count += 1
        graded[str(item.id)] = {
            "question": item.question,
            "user_answer": submitted,
            "correct_answer": item.correct_answer,
            "is_correct": correct,
        }

    score = score_percentage(correct_count, len(items))
    attempt = QuizAttempt(
        user_id=user_id,
        blueprint_id=blueprint.id,
        score=score,
        total_questions=len(items),
        time_taken=time_taken,
        answers=graded,
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)

    update_topic_mastery(db, user_id, blueprint, score, topic_labeler)

    return GradingResult(
        attempt_id=attempt.id,
        score=score,
        correct_count=correct_count,
        total_questions=len(items),
        graded_answers=graded,
    )


def list_attempts(db: Session, user_id: int) -> List[Tuple[QuizAttempt, str]]:
    """The user's attempts, newest first, with the quiz title."""
    stmt = (
        select(QuizAttempt, QuizBlueprint.title)
        .join(QuizBlueprint, QuizAttempt.blueprint_id == QuizBlueprint.id)
        .where(QuizAttempt.user_id == user_id)
        .order_by(QuizAttempt.started_at.desc(), QuizAttempt.id.desc())
    )
    return [(attempt, title) for attempt, title in db.execute(stmt)]


# --- mastery ----------------------------------------------------------------------

def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"topic mastery upsert is not supported on {name}")


def upsert_topic_mastery(db: Session, user_id: int, topic: str, mastery: float, confidence: float) -> None:
    """Insert or blend the (user, topic) mastery row in one statement."""
    now = utcnow()
    insert = _dialect_insert(db)
    stmt = insert(TopicMastery).values(
        user_id=user_id,
        topic=topic,
        mastery_level=mastery,
        confidence_score=confidence,
        last_tested=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "topic"],
        set_={
            "mastery_level": blend_mastery(TopicMastery.mastery_level, stmt.excluded.mastery_level),
            "confidence_score": blend_confidence(TopicMastery.confidence_score, stmt.excluded.confidence_score),
            "last_tested": stmt.excluded.last_tested,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)


def update_topic_mastery(
    db: Session,
    user_id: int,
    blueprint: QuizBlueprint,
    score: int,
    topic_labeler: Optional[TopicLabeler] = None,
) -> None:
    """Best-effort mastery update after grading; failures are logged, never raised."""
    labeler = topic_labeler or BlueprintTitleTopic()
    try:
        topic = labeler.label(blueprint)
        if not topic:
            return
        mastery, confidence = mastery_from_score(score)
        upsert_topic_mastery(db, user_id, topic, mastery, confidence)
        db.commit()
    except Exception:
        logger.exception("Error updating topic mastery for user %s (quiz %s)", user_id, blueprint.id)
        db.rollback()


def list_mastery(db: Session, user_id: int) -> List[TopicMastery]:
    """Weakest topics first."""
    stmt = (
        select(TopicMastery)
        .where(TopicMastery.user_id == user_id)
        .order_by(TopicMastery.mastery_level.asc(), TopicMastery.topic.asc())
    )
    return list(db.scalars(stmt))
