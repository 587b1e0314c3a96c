"""Ingestion package: turns uploaded documents into chunked, embedded content.

See pipeline.py for the status lifecycle, scheduler.py for per-chunk embedding
concurrency and ingest_file.py for the command-line ingestor.
"""
