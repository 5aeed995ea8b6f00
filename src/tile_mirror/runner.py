"""Per-job crawl: root page -> sub-pages -> tile downloads."""

import asyncio
import logging
import time
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from .config import PageJob
from .discovery import build_link_templates, discover_subpages, discover_tile_files
from .downloader import download_file
from .errors import DownloadError, FetchError
from .fetcher import build_client, fetch_page
from .models import DownloadRecord, JobOutcome, JobReport
from .utils import parse_root_url, target_file_path

logger = logging.getLogger(__name__)


async def run_job(
    job: PageJob,
    target_dir: Path,
    cancel_event: asyncio.Event,
) -> JobReport:
    """
    Crawl one job and download every tile it links to.

    Only a failure to parse or fetch the root page aborts the job. Sub-page
    and file failures are logged and skipped. cancel_event is checked before
    each sub-page fetch and before each download, never mid-transfer.
    """
    start = time.perf_counter()
    report = JobReport(name=job.name)
    logger.info("Starting job %s from %s", job.name, job.url)

    async with build_client() as client:
        try:
            root_url = parse_root_url(job.url)
            root_body = await fetch_page(client, root_url)
        except (ValueError, FetchError) as e:
            logger.error("Job %s aborted: unable to get root page: %s", job.name, e)
            report.outcome = JobOutcome.ABORTED
            report.errors.append(f"root page: {e}")
            report.duration_seconds = time.perf_counter() - start
            return report

        templates = build_link_templates(job.page_ranges)
        if not templates:
            logger.warning("Job %s has no page ranges; nothing to crawl", job.name)

        written_paths: set[Path] = set()
        for page_url in discover_subpages(root_url, root_body, templates):
            if cancel_event.is_set():
                logger.info("Job %s cancelled before fetching %s", job.name, page_url)
                report.outcome = JobOutcome.CANCELLED
                break

            report.subpages_found += 1
            try:
                page_body = await fetch_page(client, page_url)
            except FetchError as e:
                logger.warning("Skipping sub-page %s: %s", page_url, e.cause)
                report.subpages_failed += 1
                report.errors.append(str(e))
                continue

            if not await _download_tiles(
                client, job, page_url, page_body, target_dir, cancel_event, report, written_paths
            ):
                report.outcome = JobOutcome.CANCELLED
                break

    report.duration_seconds = time.perf_counter() - start
    logger.info(
        "Job %s %s: %d files, %d bytes, %d errors in %.2fs",
        job.name,
        report.outcome.value,
        report.files_downloaded,
        report.bytes_written,
        len(report.errors),
        report.duration_seconds,
    )
    return report


async def _download_tiles(
    client: httpx.AsyncClient,
    job: PageJob,
    page_url: str,
    page_body: bytes,
    target_dir: Path,
    cancel_event: asyncio.Event,
    report: JobReport,
    written_paths: set[Path],
) -> bool:
    """Download every tile linked from one sub-page. Returns False if cancelled."""
    for file_url in discover_tile_files(page_url, page_body):
        if cancel_event.is_set():
            logger.info("Job %s cancelled before downloading %s", job.name, file_url)
            return False

        try:
            written = await download_file(client, file_url, target_dir)
        except DownloadError as e:
            logger.warning("Unable to download file %s: %s", file_url, e.cause)
            report.files_failed += 1
            report.errors.append(str(e))
            continue

        # already validated by download_file
        path = target_file_path(target_dir, urlsplit(file_url).path)
        if path in written_paths:
            logger.warning(
                "Overwrote %s with %s, path already downloaded earlier in job %s",
                path,
                file_url,
                job.name,
            )
        written_paths.add(path)

        report.files_downloaded += 1
        report.bytes_written += written
        report.downloads.append(
            DownloadRecord(job=job.name, url=file_url, path=str(path), bytes_written=written)
        )
    return True
