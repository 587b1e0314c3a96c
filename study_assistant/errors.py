"""Exception taxonomy for the ingestion, retrieval and quiz pipelines.

Extraction errors are fatal to a document. EmbeddingUnavailable is tolerated
per chunk during ingestion but fatal when embedding a question. NotFoundError
subclasses are raised for missing rows and for rows owned by another user,
so callers cannot distinguish the two.
"""


class StudyAssistantError(Exception):
    """Base class for all domain errors."""


class ExtractionError(StudyAssistantError):
    """Text could not be extracted from an uploaded document."""


class UnsupportedFormat(ExtractionError):
    def __init__(self, mime_type: str):
        super().__init__(f"Unsupported file type: {mime_type}")
        self.mime_type = mime_type


class EmptyDocument(ExtractionError):
    def __init__(self, message: str = "No text extracted from document"):
        super().__init__(message)


class EmbeddingUnavailable(StudyAssistantError):
    """The embedding model call failed, timed out or returned an unusable vector."""


class GenerationUnavailable(StudyAssistantError):
    """The generative model call failed or timed out."""


class RAGFailure(StudyAssistantError):
    def __init__(self, message: str = "Failed to process question with RAG"):
        super().__init__(message)


class NoSourceMaterial(StudyAssistantError):
    def __init__(self, message: str = "No documents available to generate quiz from"):
        super().__init__(message)


class InvalidStatusTransition(StudyAssistantError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move document from {current!r} to {target!r}")
        self.current = current
        self.target = target


class NotFoundError(StudyAssistantError):
    """A row does not exist or is not owned by the requesting user."""


class DocumentNotFound(NotFoundError):
    def __init__(self, document_id: int):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class ChatSessionNotFound(NotFoundError):
    def __init__(self, session_id: int):
        super().__init__(f"Chat session {session_id} not found")
        self.session_id = session_id


class BlueprintNotFound(NotFoundError):
    def __init__(self, blueprint_id: int):
        super().__init__(f"Quiz {blueprint_id} not found")
        self.blueprint_id = blueprint_id
