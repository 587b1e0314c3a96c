"""Answer and quiz generation using OpenAI-compatible chat completions.

Provides:
- get_client: Cached OpenAI client
- _build_context: Formatting of retrieved chunks into labelled source blocks
- generate_answer: Grounded answer generation constrained to provided context
- generate_quiz_questions: Structured quiz question generation with a parse fallback
- parse_quiz_questions: Lenient parsing/validation of the model's JSON output
- is_model_service_healthy: Short-timeout liveness probe of the model service

Configuration is read from study_assistant.config.settings.
"""
import json
import logging
import re
from typing import Any, List, Optional, Sequence

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from study_assistant.config import settings
from study_assistant.errors import GenerationUnavailable
from study_assistant.models import QuestionType

logger = logging.getLogger(__name__)

_client: OpenAI | None = None

SYSTEM_PROMPT = (
    "You are a helpful study assistant. You help students understand their course materials "
    "by giving clear, accurate answers based only on the provided context from their study materials. "
    "Refer to sources by their number (e.g. 'Source 2') when you rely on them. "
    "If the context does not contain enough information to answer, say so clearly instead of guessing."
)


def get_client() -> OpenAI:
    """Return a cached OpenAI Chat Completions client for the configured model service.

    Returns:
        OpenAI: Client instance reused across calls.
    """
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.MODEL_TIMEOUT_SECONDS,
            max_retries=0,
        )
    return _client


def _build_context(chunks: Sequence[Any]) -> str:
    """Create an enumerated context block from retrieved chunks.

    Args:
        chunks: Retrieved chunks exposing document_name and content.

    Returns:
        str: Blocks of '[Source n: document name]' followed by the chunk text.
    """
    blocks: List[str] = []
    for i, c in enumerate(chunks, start=1):
        blocks.append(f"[Source {i}: {c.document_name}]\n{c.content}")
    return "\n\n".join(blocks)


def _complete(messages: List[dict], max_tokens: Optional[int] = None, temperature: Optional[float] = None) -> str:
    client = get_client()
    try:
        resp = client.chat.completions.create(
            model=settings.CHAT_MODEL,
            messages=messages,
            temperature=settings.CHAT_TEMPERATURE if temperature is None else temperature,
            max_tokens=settings.MAX_OUTPUT_TOKENS if max_tokens is None else max_tokens,
        )
    except OpenAIError as exc:
        logger.error("Chat completion failed (%s): %s", settings.CHAT_MODEL, exc)
        raise GenerationUnavailable("Failed to generate chat response") from exc
    if not resp.choices:
        raise GenerationUnavailable("Model returned no choices")
    return (resp.choices[0].message.content or "").strip()


def generate_answer(question: str, chunks: Sequence[Any], max_tokens: Optional[int] = None) -> str:
    """Generate an answer grounded in the retrieved chunks.

    The question is sent as the only user turn; prior chat history is never
    included, so every question is answered on its own.

    Args:
        question: User question to answer.
        chunks: Retrieved chunks to ground the answer.
        max_tokens: Optional cap for output tokens; defaults to settings.MAX_OUTPUT_TOKENS.

    Returns:
        str: The generated answer text.

    Raises:
        GenerationUnavailable: The model call failed or timed out.
    """
    context = _build_context(chunks)
    system = f"{SYSTEM_PROMPT}\n\nContext from study materials:\n{context}"
    return _complete(
        [
            {"role": "system", "content": system},
            {"role": "user", "content": question},
        ],
        max_tokens=max_tokens,
    )


class GeneratedQuestion(BaseModel):
    """One quiz question as emitted by the model."""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    type: QuestionType
    options: List[str] = Field(default_factory=list)
    correct_answer: str = Field(alias="correctAnswer")
    explanation: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return re.sub(r"[\s/-]+", "_", v.strip().lower())
        return v

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _stringify_answer(cls, v: Any) -> Any:
        # models sometimes emit true/false as JSON booleans
        if isinstance(v, bool):
            return "True" if v else "False"
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def _options_only_for_multiple_choice(self) -> "GeneratedQuestion":
        if self.type != QuestionType.MULTIPLE_CHOICE:
            self.options = []
        return self


FALLBACK_QUESTION = GeneratedQuestion(
    question="What is the main topic discussed in this material?",
    type=QuestionType.SHORT_ANSWER,
    options=[],
    correct_answer="See explanation",
    explanation="This is a general question about the material content.",
)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.S)


def parse_quiz_questions(raw: str) -> List[GeneratedQuestion]:
    """Parse the model's quiz output into validated questions.

    Accepts a bare JSON array, an object with a 'questions' array, and either
    wrapped in a Markdown code fence. Items that fail validation are dropped.

    Args:
        raw: Raw model output.

    Returns:
        List[GeneratedQuestion]: Valid questions, or [FALLBACK_QUESTION] when
        nothing usable could be parsed.
    """
    text = (raw or "").strip()
    m = _FENCE.search(text)
    if m:
        text = m.group(1).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # fall back to the outermost [...] span in chatty output
        start, end = text.find("["), text.rfind("]")
        try:
            data = json.loads(text[start:end + 1]) if 0 <= start < end else None
        except json.JSONDecodeError:
            data = None
    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list):
        logger.error("Failed to parse quiz questions JSON; using fallback question")
        return [FALLBACK_QUESTION]

    questions: List[GeneratedQuestion] = []
    for item in data:
        try:
            questions.append(GeneratedQuestion.model_validate(item))
        except ValidationError as exc:
            logger.warning("Dropping malformed quiz question: %s", exc.errors()[:1])
    if not questions:
        logger.error("Model returned no valid quiz questions; using fallback question")
        return [FALLBACK_QUESTION]
    return questions


def build_quiz_prompt(context: str, question_count: int, difficulty: str) -> str:
    """Prompt asking for question_count questions of the given difficulty as a JSON array."""
    return (
        f"Based on the following study material, generate {question_count} {difficulty} "
        "difficulty quiz questions.\n\n"
        f"Study Material:\n{context}\n\n"
        "Respond with ONLY a JSON array in this format:\n"
        "[\n"
        '  {"question": "Question text", "type": "multiple_choice", '
        '"options": ["A) Option 1", "B) Option 2", "C) Option 3", "D) Option 4"], '
        '"correctAnswer": "A", "explanation": "Why this is correct"},\n'
        '  {"question": "Statement to judge", "type": "true_false", "options": [], '
        '"correctAnswer": "True", "explanation": "Explanation"},\n'
        '  {"question": "Question text", "type": "short_answer", "options": [], '
        '"correctAnswer": "Expected answer", "explanation": "Explanation"}\n'
        "]\n\n"
        "Mix the three question types. Test understanding, not just memorization."
    )


def generate_quiz_questions(context: str, question_count: int, difficulty: str = "medium") -> List[GeneratedQuestion]:
    """Ask the model for quiz questions over the given context.

    Args:
        context: Labelled source material.
        question_count: Number of questions requested.
        difficulty: Difficulty label passed through to the prompt.

    Returns:
        List[GeneratedQuestion]: At least one question (the fallback if the
        output could not be parsed).

    Raises:
        GenerationUnavailable: The model call itself failed or timed out.
    """
    raw = _complete(
        [{"role": "user", "content": build_quiz_prompt(context, question_count, difficulty)}],
        max_tokens=max(settings.MAX_OUTPUT_TOKENS, 300 * question_count),
        temperature=0.4,
    )
    return parse_quiz_questions(raw)


def is_model_service_healthy() -> bool:
    """Probe the model service with a short timeout.

    Returns:
        bool: True if the model list endpoint answered.
    """
    try:
        get_client().with_options(timeout=settings.HEALTH_TIMEOUT_SECONDS).models.list()
        return True
    except OpenAIError as exc:
        logger.warning("Model service health probe failed: %s", exc)
        return False
