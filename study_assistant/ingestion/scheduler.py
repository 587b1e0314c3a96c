"""Scheduling of per-chunk embedding work.

Ingestion turns every persisted chunk into one EmbeddingJob and hands the jobs
to an EmbeddingScheduler. Schedulers only compute vectors; persisting them stays
with the caller, on the caller's thread. A job's failure is captured in its
EmbeddingResult and never affects the other jobs.

- SequentialScheduler: one job at a time, in chunk order (default).
- ThreadPoolScheduler: bounded concurrency; results still come back in chunk order.
"""
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional

from study_assistant.config import settings

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], List[float]]


@dataclass(frozen=True)
class EmbeddingJob:
    chunk_id: int
    chunk_index: int
    text: str


@dataclass
class EmbeddingResult:
    job: EmbeddingJob
    vector: Optional[List[float]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.vector is not None


def _execute(job: EmbeddingJob, embed: EmbedFn) -> EmbeddingResult:
    try:
        return EmbeddingResult(job=job, vector=embed(job.text))
    except Exception as exc:  # recorded on the result and reported by the caller
        return EmbeddingResult(job=job, error=exc)


class EmbeddingScheduler(ABC):
    """Runs embedding jobs and yields one result per job, in job order."""

    @abstractmethod
    def run(self, jobs: Iterable[EmbeddingJob], embed: EmbedFn) -> Iterator[EmbeddingResult]:
        ...


class SequentialScheduler(EmbeddingScheduler):
    def run(self, jobs: Iterable[EmbeddingJob], embed: EmbedFn) -> Iterator[EmbeddingResult]:
        for job in jobs:
            yield _execute(job, embed)


class ThreadPoolScheduler(EmbeddingScheduler):
    """Embeds up to max_workers chunks concurrently."""

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers

    def run(self, jobs: Iterable[EmbeddingJob], embed: EmbedFn) -> Iterator[EmbeddingResult]:
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="embed") as pool:
            futures = [pool.submit(_execute, job, embed) for job in jobs]
            for future in futures:
                yield future.result()


def default_scheduler() -> EmbeddingScheduler:
    """Scheduler selected by settings.EMBEDDING_CONCURRENCY."""
    if settings.EMBEDDING_CONCURRENCY > 1:
        logger.debug("Using thread pool scheduler (%d workers)", settings.EMBEDDING_CONCURRENCY)
        return ThreadPoolScheduler(settings.EMBEDDING_CONCURRENCY)
    return SequentialScheduler()
