"""Supervisor: run all jobs concurrently and handle interrupt signals."""

import asyncio
import logging
import signal
import time
from pathlib import Path
from typing import Any, Callable

from .config import MirrorConfig
from .loader import load_manifest
from .models import JobOutcome, JobReport, PipelineReport
from .runner import run_job

logger = logging.getLogger(__name__)

GRACE_PERIOD_SECONDS = 5.0
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(cancel_event: asyncio.Event) -> Callable[[], None]:
    """Route SIGINT/SIGTERM to cancel_event. Returns a callable that undoes it."""

    def _signal_handler() -> None:
        if not cancel_event.is_set():
            logger.warning("Terminating")
        cancel_event.set()

    loop = asyncio.get_running_loop()
    on_loop: list[signal.Signals] = []
    previous: dict[signal.Signals, Any] = {}
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _signal_handler)
            on_loop.append(sig)
        except NotImplementedError:
            # Windows has no add_signal_handler
            previous[sig] = signal.signal(
                sig, lambda *_: loop.call_soon_threadsafe(_signal_handler)
            )

    def _restore() -> None:
        for sig in on_loop:
            loop.remove_signal_handler(sig)
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return _restore


async def supervise(
    config: MirrorConfig,
    cancel_event: asyncio.Event | None = None,
    grace_period: float = GRACE_PERIOD_SECONDS,
    handle_signals: bool = True,
) -> tuple[list[JobReport], bool]:
    """
    Start one task per job and wait for all of them, or for cancellation.

    Once cancel_event is set, jobs get grace_period seconds to notice it.
    Jobs still running after that are cancelled outright, so shutdown is
    best effort. Returns (job reports in config order, interrupted).
    """
    cancel_event = cancel_event or asyncio.Event()
    restore_signals = _install_signal_handlers(cancel_event) if handle_signals else None

    tasks = [
        asyncio.create_task(run_job(job, config.target_dir, cancel_event), name=job.name)
        for job in config.pages
    ]
    stop = asyncio.create_task(cancel_event.wait())
    pending: set[asyncio.Task] = set(tasks)
    interrupted = False
    try:
        while pending and not stop.done():
            _, pending = await asyncio.wait(
                pending | {stop}, return_when=asyncio.FIRST_COMPLETED
            )
            pending.discard(stop)

        if pending:
            interrupted = True
            logger.warning(
                "Waiting up to %.1fs for %d running jobs to stop", grace_period, len(pending)
            )
            _, pending = await asyncio.wait(pending, timeout=grace_period)
            for task in pending:
                logger.warning("Job %s did not stop within the grace period", task.get_name())
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        elif stop.done():
            interrupted = True
    finally:
        stop.cancel()
        await asyncio.gather(stop, return_exceptions=True)
        if restore_signals is not None:
            restore_signals()

    reports = [_collect(task) for task in tasks]
    return reports, interrupted


def _collect(task: asyncio.Task) -> JobReport:
    """Turn a finished job task into its report, whatever way it ended."""
    name = task.get_name()
    if task.cancelled():
        return JobReport(
            name=name,
            outcome=JobOutcome.CANCELLED,
            errors=["did not stop within grace period"],
        )
    exc = task.exception()
    if exc is not None:
        logger.error("Job %s failed unexpectedly", name, exc_info=exc)
        return JobReport(name=name, outcome=JobOutcome.ABORTED, errors=[f"unexpected error: {exc}"])
    return task.result()


def run_pipeline(
    config: MirrorConfig,
    grace_period: float = GRACE_PERIOD_SECONDS,
    manifest_path: str | Path | None = None,
) -> PipelineReport:
    """Run every configured job and optionally record the downloads in DuckDB."""
    start = time.perf_counter()
    logger.info(
        "Starting mirror of %d jobs into %s", len(config.pages), config.target_dir
    )

    jobs, interrupted = asyncio.run(supervise(config, grace_period=grace_period))
    report = PipelineReport(
        jobs=jobs,
        interrupted=interrupted,
        duration_seconds=time.perf_counter() - start,
    )

    if manifest_path is not None:
        load_manifest(str(manifest_path), report.jobs)

    logger.info(
        "%s. Duration: %.2fs, %d files, %d bytes",
        "Terminated" if interrupted else "Done",
        report.duration_seconds,
        report.files_downloaded,
        report.bytes_written,
    )
    return report
