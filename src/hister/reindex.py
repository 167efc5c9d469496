"""Full rebuild of an index directory with an all-or-nothing swap.

The caller must make sure nothing else has ``source_path`` or
``scratch_path`` open while a rebuild runs.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import shutil

from hister.docpipeline.processor import DocumentProcessor
from hister.errors import DocumentError, PolicyRejection, ReindexError, StorageError
from hister.models import Document
from hister.observability.metrics import DOCUMENTS, OPERATION_LATENCY, track_latency
from hister.observability.tracing import create_span
from hister.rules import Rules
from hister.search.storage import SqliteIndex


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


@dataclass(frozen=True)
class ReindexResult:
    total: int
    indexed: int
    skipped: int


def reindex(
    source_path: str | Path,
    scratch_path: str | Path,
    rules: Rules,
    skip_sensitive_checks: bool = False,
    *,
    processor: DocumentProcessor | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> ReindexResult:
    """Rebuild ``source_path`` through ``scratch_path`` and swap them.

    Every stored document is processed again; documents rejected by policy
    (sensitive content, skip rule) or by processing are dropped and counted
    as skipped. Any storage failure removes the scratch index, leaves the
    source untouched and raises ``ReindexError``.
    """
    source_path = Path(source_path)
    scratch_path = Path(scratch_path)
    processor = processor or DocumentProcessor()

    with (
        create_span("index.reindex", attributes={"index.path": str(source_path)}),
        track_latency(OPERATION_LATENCY, operation="reindex"),
    ):
        if scratch_path.exists():
            logger.warning("Removing stale scratch index %s", scratch_path)
            shutil.rmtree(scratch_path)

        source = SqliteIndex(source_path, read_only=True)
        try:
            source.open()
        except StorageError as exc:
            raise ReindexError(f"cannot open source index {source_path}: {exc}") from exc

        scratch = SqliteIndex(scratch_path, source.schema)
        try:
            result = _copy_documents(source, scratch, rules, processor, skip_sensitive_checks, page_size)
        except BaseException as exc:
            _discard(scratch)
            if isinstance(exc, StorageError):
                raise ReindexError(f"reindex of {source_path} aborted: {exc}") from exc
            raise
        finally:
            source.close()
        scratch.close()

        _swap(source_path, scratch_path)
        logger.info(
            "Reindexed %s: %d documents, %d indexed, %d skipped",
            source_path,
            result.total,
            result.indexed,
            result.skipped,
        )
        return result


def _copy_documents(
    source: SqliteIndex,
    scratch: SqliteIndex,
    rules: Rules,
    processor: DocumentProcessor,
    skip_sensitive_checks: bool,
    page_size: int,
) -> ReindexResult:
    scratch.open()
    total = indexed = skipped = 0
    offset = 0
    while True:
        page = source.page(offset, page_size)
        if not page:
            break
        offset += len(page)
        for fields in page:
            total += 1
            doc = Document.from_index_fields(fields)
            doc.skip_sensitive_check(skip_sensitive_checks)
            try:
                processor.process(doc)
            except (PolicyRejection, DocumentError) as exc:
                logger.info("Dropping %s during reindex: %s", doc.url, exc)
                DOCUMENTS.labels(operation="reindex", outcome="skipped").inc()
                skipped += 1
                continue
            if rules.is_skip(doc.url):
                logger.info("Dropping URL that has since been added to skip rules: %s", doc.url)
                DOCUMENTS.labels(operation="reindex", outcome="skipped").inc()
                skipped += 1
                continue
            scratch.add(doc.url, doc.to_index_fields())
            DOCUMENTS.labels(operation="reindex", outcome="indexed").inc()
            indexed += 1
        logger.debug("Reindexed %d documents so far", offset)
    return ReindexResult(total=total, indexed=indexed, skipped=skipped)


def _discard(scratch: SqliteIndex) -> None:
    scratch.close()
    if scratch.path.exists():
        try:
            shutil.rmtree(scratch.path)
        except OSError as exc:
            logger.warning("Failed to remove scratch index %s: %s", scratch.path, exc)


def _swap(source_path: Path, scratch_path: Path) -> None:
    """Move the scratch index into place, restoring the source on failure."""
    backup_path = source_path.with_name(source_path.name + ".bak")
    if backup_path.exists():
        shutil.rmtree(backup_path)
    try:
        source_path.rename(backup_path)
    except OSError as exc:
        _discard_path(scratch_path)
        raise ReindexError(f"failed to move {source_path} aside: {exc}") from exc
    try:
        scratch_path.rename(source_path)
    except OSError as exc:
        backup_path.rename(source_path)
        _discard_path(scratch_path)
        raise ReindexError(f"failed to move {scratch_path} into place: {exc}") from exc
    shutil.rmtree(backup_path, ignore_errors=True)


def _discard_path(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)
