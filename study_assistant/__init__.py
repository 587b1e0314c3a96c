"""Study assistant package: document ingestion, retrieval-augmented answers,
quiz generation and grading over a student's own course materials.

Submodules overview:
- main: FastAPI application, routes and error mapping.
- config: Application settings and environment variable loading.
- db: Database engine/session management helpers.
- models: ORM models and relationships.
- schemas: Pydantic request/response models for API contracts.
- errors: Domain exception taxonomy.
- extraction: PDF/DOCX/plain-text extraction.
- utils: Sentence-bounded chunking and upload naming.
- embedding: Embedding client for the model service.
- cache: Redis cache for question embeddings.
- generation: Answer and quiz generation (prompting, parsing, health probe).
- retrieval: Similarity search and quiz sampling over a user's chunks.
- rag: Retrieval-augmented answering with citations.
- documents / chat / quiz: Per-user services behind the API.
- ingestion: Ingestion pipeline, embedding schedulers and a file-ingest CLI.
- obs: Observability utilities (tracing/spans).
"""
