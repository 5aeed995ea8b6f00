"""DuckDB run manifest: which files each job wrote and how each job ended."""

import logging
from pathlib import Path

import duckdb

from .models import JobReport

logger = logging.getLogger(__name__)

BULK_CHUNK_SIZE = 1000


def _bulk_insert(
    conn: duckdb.DuckDBPyConnection,
    table: str,
    columns: list[str],
    rows: list[tuple],
) -> None:
    """Insert rows via multi-VALUES statements, chunked to avoid parameter limits."""
    if not rows:
        return
    placeholder = f"({', '.join(['?'] * len(columns))})"
    cols = ", ".join(columns)
    for i in range(0, len(rows), BULK_CHUNK_SIZE):
        chunk = rows[i : i + BULK_CHUNK_SIZE]
        values = ", ".join([placeholder] * len(chunk))
        params = [val for row in chunk for val in row]
        conn.execute(f"INSERT INTO {table} ({cols}) VALUES {values}", params)


def load_manifest(db_path: str, jobs: list[JobReport]) -> None:
    """
    Replace the manifest tables with the results of this run.

    Tables are dropped and recreated each time, the same way files on
    disk are overwritten by a re-run.

    Args:
        db_path: Path to DuckDB database file
        jobs: Reports of every job in the run
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(db_path)
    try:
        conn.execute("DROP TABLE IF EXISTS downloads")
        conn.execute("DROP TABLE IF EXISTS jobs")
        conn.execute("""
            CREATE TABLE jobs (
                name VARCHAR,
                outcome VARCHAR,
                subpages_found INTEGER,
                subpages_failed INTEGER,
                files_downloaded INTEGER,
                files_failed INTEGER,
                bytes_written BIGINT,
                duration_seconds DOUBLE
            )
        """)
        conn.execute("""
            CREATE TABLE downloads (
                job VARCHAR,
                url VARCHAR,
                path VARCHAR,
                bytes_written BIGINT,
                downloaded_at TIMESTAMP
            )
        """)

        _bulk_insert(
            conn,
            "jobs",
            [
                "name",
                "outcome",
                "subpages_found",
                "subpages_failed",
                "files_downloaded",
                "files_failed",
                "bytes_written",
                "duration_seconds",
            ],
            [
                (
                    j.name,
                    j.outcome.value,
                    j.subpages_found,
                    j.subpages_failed,
                    j.files_downloaded,
                    j.files_failed,
                    j.bytes_written,
                    j.duration_seconds,
                )
                for j in jobs
            ],
        )

        download_rows = [
            (d.job, d.url, d.path, d.bytes_written, d.downloaded_at.replace(tzinfo=None))
            for j in jobs
            for d in j.downloads
        ]
        _bulk_insert(
            conn,
            "downloads",
            ["job", "url", "path", "bytes_written", "downloaded_at"],
            download_rows,
        )
        logger.info("Recorded %d jobs and %d downloads in %s", len(jobs), len(download_rows), db_path)
    finally:
        conn.close()
