"""Batch compilation of many transcripts under bounded parallelism.

Files are handled in two nested phases. The outer phase reads and parses a
fixed-size group of files concurrently (I/O bound, on the loop's default
thread pool). The inner phase hands each parsed conversation to a worker
pool running the timeline compiler, one chunk of ``pool_size`` units at a
time; a chunk must finish completely before the next one is submitted.

Results come back in completion order. Use ``BatchResult.sorted_by_start``
when chronological order matters.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from agent_trace import config
from agent_trace.models import CompiledConversation, Conversation
from agent_trace.parsers.conversations import load_conversation
from agent_trace.pricing import PricingTable, get_pricing_table
from agent_trace.timeline.compiler import compile_conversation

logger = logging.getLogger("ato.batch")

ProgressCallback = Callable[[int, int], None]


class ConversationCompileError(RuntimeError):
    """A single worker unit failed; carries the file it was compiling."""

    def __init__(self, file: str, cause: BaseException):
        self.file = file
        self.cause = cause
        super().__init__(f"Failed to compile {file}: {cause!r}")


@dataclass
class UnitFailure:
    file: str
    error: str


@dataclass
class BatchResult:
    results: list[CompiledConversation] = field(default_factory=list)
    conversations: int = 0
    files_processed: int = 0
    failures: list[UnitFailure] = field(default_factory=list)
    duration_ms: int = 0

    def sorted_by_start(self, newest_first: bool = False) -> list[CompiledConversation]:
        return sorted(self.results, key=lambda result: (result.started_at, result.file), reverse=newest_first)


def default_pool_size(cpu_count: Optional[int] = None, cap: Optional[int] = None) -> int:
    """Leave one core for the coordinating process, never go below 2, never above *cap*."""
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    ceiling = cap if cap is not None else config.MAX_WORKERS
    return min(ceiling, max(2, cpus - 1))


def _chunks(items: Sequence, size: int) -> list[Sequence]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _discard_pool(executor: ProcessPoolExecutor) -> None:
    """Stop *executor* without waiting on workers stuck in timed-out units."""
    terminate_workers = getattr(executor, "terminate_workers", None)
    if terminate_workers is not None:
        terminate_workers()
        return
    # Python < 3.14 has no public way to stop busy workers.
    for process in list((executor._processes or {}).values()):
        process.terminate()
    executor.shutdown(wait=False, cancel_futures=True)


class BatchOrchestrator:
    """Parse and compile conversation files in grouped, bounded batches."""

    def __init__(
        self,
        *,
        parse_batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        unit_timeout: Optional[float] = None,
        isolate_failures: Optional[bool] = None,
        pricing: Optional[PricingTable] = None,
        executor: Optional[Executor] = None,
    ):
        self.parse_batch_size = max(1, parse_batch_size or config.PARSE_BATCH_SIZE)
        configured = concurrency or config.CONCURRENCY
        self.pool_size = configured if configured and configured > 0 else default_pool_size()
        timeout = unit_timeout if unit_timeout is not None else config.UNIT_TIMEOUT_SECONDS
        self.unit_timeout = timeout if timeout and timeout > 0 else None
        self.isolate_failures = config.ISOLATE_FAILURES if isolate_failures is None else isolate_failures
        self.pricing = pricing or get_pricing_table()
        self._executor = executor
        self._stalled = False

    async def _parse_group(self, paths: Sequence[Path]) -> list[Conversation]:
        loop = asyncio.get_running_loop()
        parsed = await asyncio.gather(*(loop.run_in_executor(None, load_conversation, path) for path in paths))
        return [conversation for conversation in parsed if conversation is not None]

    async def _compile_unit(self, executor: Executor, conversation: Conversation) -> CompiledConversation | None:
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(executor, compile_conversation, conversation, self.pricing)
        try:
            if self.unit_timeout:
                return await asyncio.wait_for(future, timeout=self.unit_timeout)
            return await future
        except asyncio.TimeoutError as exc:
            self._stalled = True
            raise ConversationCompileError(conversation.file_path, exc) from exc
        except Exception as exc:
            raise ConversationCompileError(conversation.file_path, exc) from exc

    async def _compile_chunk(
        self,
        executor: Executor,
        chunk: Sequence[Conversation],
        batch: BatchResult,
    ) -> None:
        units = [self._compile_unit(executor, conversation) for conversation in chunk]
        if not self.isolate_failures:
            outcomes = await asyncio.gather(*units)
        else:
            outcomes = await asyncio.gather(*units, return_exceptions=True)

        for outcome in outcomes:
            if isinstance(outcome, ConversationCompileError):
                logger.error("%s", outcome)
                batch.failures.append(UnitFailure(file=outcome.file, error=repr(outcome.cause)))
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                batch.results.append(outcome)

    async def run(self, paths: Sequence[Path], progress: Optional[ProgressCallback] = None) -> BatchResult:
        paths = [Path(path) for path in paths]
        batch = BatchResult()
        t0 = time.monotonic()
        logger.info(
            "Compiling %d file(s): parse groups of %d, %d worker(s)",
            len(paths),
            self.parse_batch_size,
            self.pool_size,
        )

        owned = self._executor is None
        executor = self._executor or ProcessPoolExecutor(max_workers=self.pool_size)
        self._stalled = False
        try:
            for group in _chunks(paths, self.parse_batch_size):
                conversations = await self._parse_group(group)
                batch.conversations += len(conversations)
                for chunk in _chunks(conversations, self.pool_size):
                    await self._compile_chunk(executor, chunk, batch)
                    if self._stalled and owned:
                        # Timed-out units still occupy workers; replace the pool.
                        logger.warning("Restarting worker pool after a unit timed out")
                        _discard_pool(executor)
                        executor = ProcessPoolExecutor(max_workers=self.pool_size)
                        self._stalled = False
                batch.files_processed += len(group)
                if progress:
                    progress(batch.files_processed, len(paths))
                logger.debug("Processed %d/%d files", batch.files_processed, len(paths))
        finally:
            if owned:
                if self._stalled:
                    _discard_pool(executor)
                else:
                    executor.shutdown(wait=True, cancel_futures=True)

        batch.duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            "Batch complete: %d timeline(s) from %d conversation(s), %d failure(s) in %dms",
            len(batch.results),
            batch.conversations,
            len(batch.failures),
            batch.duration_ms,
        )
        return batch


def run_batch(paths: Sequence[Path], progress: Optional[ProgressCallback] = None, **kwargs) -> BatchResult:
    """Synchronous convenience wrapper around ``BatchOrchestrator.run``."""
    return asyncio.run(BatchOrchestrator(**kwargs).run(paths, progress=progress))
