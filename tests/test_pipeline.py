"""Tests for the supervisor and the end-to-end pipeline."""

import asyncio
import os
import signal
import sys
import time

import duckdb
import pytest
import respx
from httpx import Response

from tile_mirror import pipeline
from tile_mirror.config import MirrorConfig, PageJob
from tile_mirror.models import JobOutcome, JobReport
from tile_mirror.pipeline import run_pipeline, supervise


def _config(target_dir, *jobs):
    return MirrorConfig(targetDir=str(target_dir), pages=list(jobs))


def _job(name):
    return PageJob(name=name, url=f"https://archive.example/{name}/", pageRanges=["1"])


@respx.mock
@pytest.mark.asyncio
async def test_supervise_failing_job_does_not_affect_others(tmp_path):
    respx.get("https://archive.example/bad/").mock(return_value=Response(500))
    respx.get("https://archive.example/good/").mock(
        return_value=Response(200, text='<a href="tileSG-1/">1</a>')
    )
    respx.get("https://archive.example/good/tileSG-1/").mock(
        return_value=Response(200, text='<a href="t.tif">t</a>')
    )
    respx.get("https://archive.example/good/tileSG-1/t.tif").mock(
        return_value=Response(200, content=b"tile")
    )

    reports, interrupted = await supervise(
        _config(tmp_path, _job("bad"), _job("good")), handle_signals=False
    )

    assert not interrupted
    assert [r.name for r in reports] == ["bad", "good"]
    assert reports[0].outcome == JobOutcome.ABORTED
    assert reports[1].outcome == JobOutcome.DONE
    assert (tmp_path / "good" / "tileSG-1" / "t.tif").read_bytes() == b"tile"


@pytest.mark.asyncio
async def test_supervise_returns_without_grace_when_jobs_finish(tmp_path, monkeypatch):
    async def quick_job(job, target_dir, cancel_event):
        return JobReport(name=job.name)

    monkeypatch.setattr(pipeline, "run_job", quick_job)

    start = time.perf_counter()
    reports, interrupted = await supervise(
        _config(tmp_path, _job("a"), _job("b")), grace_period=30, handle_signals=False
    )

    assert time.perf_counter() - start < 5
    assert not interrupted
    assert all(r.outcome == JobOutcome.DONE for r in reports)


@pytest.mark.asyncio
async def test_supervise_broadcasts_cancellation_to_all_jobs(tmp_path, monkeypatch):
    seen = []

    async def polite_job(job, target_dir, cancel_event):
        await cancel_event.wait()
        seen.append(job.name)
        return JobReport(name=job.name, outcome=JobOutcome.CANCELLED)

    monkeypatch.setattr(pipeline, "run_job", polite_job)
    cancel_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel_event.set)

    reports, interrupted = await supervise(
        _config(tmp_path, _job("a"), _job("b"), _job("c")),
        cancel_event=cancel_event,
        handle_signals=False,
    )

    assert interrupted
    assert sorted(seen) == ["a", "b", "c"]
    assert all(r.outcome == JobOutcome.CANCELLED for r in reports)
    assert all(r.errors == [] for r in reports)


@pytest.mark.asyncio
async def test_supervise_gives_up_after_grace_period(tmp_path, monkeypatch):
    async def stubborn_job(job, target_dir, cancel_event):
        await asyncio.sleep(60)
        return JobReport(name=job.name)

    monkeypatch.setattr(pipeline, "run_job", stubborn_job)
    cancel_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel_event.set)

    start = time.perf_counter()
    reports, interrupted = await supervise(
        _config(tmp_path, _job("slow")),
        cancel_event=cancel_event,
        grace_period=0.2,
        handle_signals=False,
    )

    assert time.perf_counter() - start < 5
    assert interrupted
    assert reports[0].outcome == JobOutcome.CANCELLED
    assert "grace period" in reports[0].errors[0]


@pytest.mark.asyncio
async def test_supervise_unexpected_job_exception_is_reported(tmp_path, monkeypatch):
    async def broken_job(job, target_dir, cancel_event):
        if job.name == "broken":
            raise RuntimeError("bug")
        return JobReport(name=job.name)

    monkeypatch.setattr(pipeline, "run_job", broken_job)

    reports, _ = await supervise(
        _config(tmp_path, _job("broken"), _job("fine")), handle_signals=False
    )

    assert reports[0].outcome == JobOutcome.ABORTED
    assert "bug" in reports[0].errors[0]
    assert reports[1].outcome == JobOutcome.DONE


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
@pytest.mark.asyncio
async def test_supervise_sigterm_triggers_cancellation(tmp_path, monkeypatch):
    async def polite_job(job, target_dir, cancel_event):
        await cancel_event.wait()
        return JobReport(name=job.name, outcome=JobOutcome.CANCELLED)

    monkeypatch.setattr(pipeline, "run_job", polite_job)
    asyncio.get_running_loop().call_later(0.05, os.kill, os.getpid(), signal.SIGTERM)

    reports, interrupted = await supervise(_config(tmp_path, _job("a")), grace_period=1)

    assert interrupted
    assert reports[0].outcome == JobOutcome.CANCELLED


@pytest.mark.asyncio
async def test_supervise_no_jobs(tmp_path):
    reports, interrupted = await supervise(_config(tmp_path), handle_signals=False)
    assert reports == []
    assert not interrupted


@respx.mock
def test_run_pipeline_end_to_end(tmp_path):
    """One job, one matching sub-page, one tile -> exactly one file on disk."""
    target = tmp_path / "out"
    manifest = tmp_path / "manifest.duckdb"
    respx.get("https://archive.example/archive/vol1/").mock(
        return_value=Response(
            200, text='<a href="tileSG-1/">one</a><a href="tileSG-2/">two</a>'
        )
    )
    respx.get("https://archive.example/archive/vol1/tileSG-1/").mock(
        return_value=Response(200, text='<a href="image1.tif">image</a>')
    )
    respx.get("https://archive.example/archive/vol1/tileSG-1/image1.tif").mock(
        return_value=Response(200, content=b"TIFFDATA")
    )
    config = MirrorConfig(
        targetDir=str(target),
        pages=[
            PageJob(name="vol1", url="https://archive.example/archive/vol1/", pageRanges=["1"])
        ],
    )

    report = run_pipeline(config, manifest_path=manifest)

    assert report.succeeded
    assert not report.interrupted
    assert report.files_downloaded == 1
    files = [p for p in target.rglob("*") if p.is_file()]
    assert files == [target / "vol1" / "tileSG-1" / "image1.tif"]
    assert files[0].read_bytes() == b"TIFFDATA"

    conn = duckdb.connect(str(manifest))
    assert conn.execute("SELECT job, path FROM downloads").fetchall() == [
        ("vol1", str(target / "vol1" / "tileSG-1" / "image1.tif"))
    ]
    conn.close()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
@pytest.mark.asyncio
async def test_supervise_fallback_signal_handlers_are_restored(tmp_path, monkeypatch):
    """Without loop signal support, signal.signal is used and undone afterwards."""
    loop = asyncio.get_running_loop()

    def unsupported(*args):
        raise NotImplementedError

    monkeypatch.setattr(loop, "add_signal_handler", unsupported)

    async def polite_job(job, target_dir, cancel_event):
        os.kill(os.getpid(), signal.SIGTERM)
        await cancel_event.wait()
        return JobReport(name=job.name, outcome=JobOutcome.CANCELLED)

    monkeypatch.setattr(pipeline, "run_job", polite_job)
    before_int = signal.getsignal(signal.SIGINT)
    before_term = signal.getsignal(signal.SIGTERM)

    reports, interrupted = await supervise(_config(tmp_path, _job("a")), grace_period=1)

    assert interrupted
    assert reports[0].outcome == JobOutcome.CANCELLED
    assert signal.getsignal(signal.SIGINT) is before_int
    assert signal.getsignal(signal.SIGTERM) is before_term
