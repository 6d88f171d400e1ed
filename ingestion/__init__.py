"""
Catalog file-ingestion pipeline components.

This package turns an uploaded catalog CSV into product rows:

Modules:
    notifications: Queue message and object key parsing
    runner: Orchestrator that drives every stage for one uploaded file
    tracker: Per-job status records (pending, processing, completed, failed)
    scheduler: APScheduler-driven queue poller
    handler: Queue-triggered entry point

Subpackages:
    extractors: Object store download into local staging
    transformers: CSV validation, deduplication and batching
    loaders: Tenant partitions and batch upserts

Architecture:
    notification → fetch → validate/dedupe → batch → partition → load

    Stages run sequentially. Any failure becomes a recorded job status;
    batches already committed stay committed.

Usage:
    from core.database import create_engine_from_settings
    from ingestion.runner import IngestionRunner

    engine = create_engine_from_settings()
    runner = IngestionRunner.from_engine(engine)
    summary = await runner.handle_event(
        {"Records": [{"messageId": "1", "body": '{"bucket": "b", "key": "1/7/p.csv"}'}]}
    )

Error Handling:
    All components raise exceptions from core.exceptions; see
    ``core.exceptions`` for the hierarchy and retry classification.
"""

__all__ = [
    "IngestionRunner",
    "MetadataTracker",
    "QueuePoller",
    "handler",
]
