from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from git_statusline.config import Options
from git_statusline.engine import GIT_STATUS_ARGS, StatusEngine
from git_statusline.models import Snapshot
from tests.fakes import CLEAN_STATUS, FakeRunner, FakeWatchFactory, failed, ok, settle, timed_out


@pytest.mark.asyncio
async def test_concurrent_requests_coalesce_into_one_run(engine: StatusEngine, runner: FakeRunner):
    started = [engine.request_status_refresh() for _ in range(5)]
    await settle()

    assert started == [True, False, False, False, False]
    assert len(runner.calls_for("status")) == 1
    call = runner.calls_for("status")[0]
    assert call.args == ["git", *GIT_STATUS_ARGS]
    assert call.timeout_ms == 1000
    assert engine.busy

    call.future.set_result(ok(CLEAN_STATUS + "# branch.ab +0 -2\n"))
    await settle()

    assert engine.snapshot is not None
    assert engine.snapshot.behind == 2
    # completion starts the cool-down, requests are still dropped
    assert engine.busy
    assert engine.request_status_refresh() is False

    await asyncio.sleep(0.1)

    assert not engine.busy
    assert engine.request_status_refresh() is True
    await settle()
    assert len(runner.calls_for("status")) == 2
    await engine.aclose()


@pytest.mark.asyncio
async def test_cooldown_is_not_extended_by_requests(tmp_path: Path, runner: FakeRunner, watches: FakeWatchFactory):
    engine = StatusEngine(
        Options(working_directory=str(tmp_path), status_cooldown=200),
        runner=runner,
        watch_factory=watches,
    )
    runner.responses["status"] = ok(CLEAN_STATUS)
    engine.request_status_refresh()
    await settle()

    for _ in range(3):
        await asyncio.sleep(0.02)
        assert engine.request_status_refresh() is False

    await asyncio.sleep(0.3)
    assert not engine.busy
    assert len(runner.calls_for("status")) == 1


@pytest.mark.asyncio
async def test_timeout_keeps_previous_snapshot(engine: StatusEngine, runner: FakeRunner):
    previous = Snapshot(branch="main", ahead=1)
    engine.store.replace(previous)
    runner.responses["status"] = timed_out()

    engine.request_status_refresh()
    await settle()

    assert engine.snapshot is previous
    assert len(runner.calls_for("status")) == 1


@pytest.mark.asyncio
async def test_non_zero_exit_clears_snapshot(engine: StatusEngine, runner: FakeRunner):
    engine.store.replace(Snapshot(branch="main"))
    runner.responses["status"] = failed(128)

    engine.request_status_refresh()
    await settle()

    assert engine.snapshot is None


@pytest.mark.asyncio
async def test_launch_failure_is_swallowed(tmp_path: Path, runner: FakeRunner, watches: FakeWatchFactory):
    engine = StatusEngine(
        Options(working_directory=str(tmp_path), status_cooldown=0),
        runner=runner,
        watch_factory=watches,
    )
    engine.store.replace(Snapshot(branch="main"))
    runner.responses["status"] = FileNotFoundError("git")

    assert engine.request_status_refresh() is True
    await settle()

    assert engine.snapshot is None
    assert not engine.busy


@pytest.mark.asyncio
async def test_parse_failure_releases_busy_flag(
    engine: StatusEngine, runner: FakeRunner, monkeypatch: pytest.MonkeyPatch
):
    def _explode(output: str) -> Snapshot:
        raise ValueError("boom")

    monkeypatch.setattr("git_statusline.engine.parse_porcelain", _explode)
    previous = Snapshot(branch="main")
    engine.store.replace(previous)
    runner.responses["status"] = ok("whatever")

    engine.request_status_refresh()
    await settle()
    await asyncio.sleep(0.1)

    assert engine.snapshot is previous
    assert not engine.busy


@pytest.mark.asyncio
async def test_custom_git_executable(tmp_path: Path, runner: FakeRunner, watches: FakeWatchFactory):
    engine = StatusEngine(
        Options(working_directory=str(tmp_path), git_executable="/usr/local/bin/git"),
        runner=runner,
        watch_factory=watches,
    )
    runner.responses["status"] = ok(CLEAN_STATUS)

    engine.request_status_refresh()
    await settle()

    assert runner.calls[0].args[0] == "/usr/local/bin/git"
    assert runner.calls[0].cwd == tmp_path
    await engine.aclose()


def test_requests_without_event_loop_are_dropped(engine: StatusEngine, runner: FakeRunner):
    assert engine.request_status_refresh() is False
    assert engine.request_fetch() is False
    engine.on_working_directory_changed()

    assert not engine.busy
    assert runner.calls == []


@pytest.mark.asyncio
async def test_successful_fetch_requests_status(engine: StatusEngine, runner: FakeRunner):
    runner.responses["fetch"] = ok()
    runner.responses["status"] = ok(CLEAN_STATUS)

    assert engine.request_fetch() is True
    await settle()

    fetch = runner.calls_for("fetch")[0]
    assert fetch.timeout_ms is None
    assert len(runner.calls_for("status")) == 1
    assert engine.snapshot is not None
    assert engine.snapshot.branch == "main"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [failed(1), OSError("no git")])
async def test_failed_fetch_is_ignored(engine: StatusEngine, runner: FakeRunner, response):
    runner.responses["fetch"] = response

    engine.request_fetch()
    await settle()

    assert runner.calls_for("status") == []
    assert not engine.busy


@pytest.mark.asyncio
async def test_fetch_skipped_while_previous_fetch_runs(engine: StatusEngine, runner: FakeRunner):
    runner.responses["status"] = ok(CLEAN_STATUS)

    assert engine.request_fetch() is True
    await settle()
    assert engine.request_fetch() is False
    assert engine.request_fetch() is False
    await settle()
    assert len(runner.calls_for("fetch")) == 1

    runner.pending("fetch")[0].future.set_result(failed(1))
    await settle()

    assert engine.request_fetch() is True
    await settle()
    assert len(runner.calls_for("fetch")) == 2
    await engine.aclose()


@pytest.mark.asyncio
async def test_fetch_does_not_take_busy_flag(engine: StatusEngine, runner: FakeRunner):
    engine.request_status_refresh()
    engine.request_fetch()
    await settle()

    assert len(runner.pending("status")) == 1
    assert len(runner.pending("fetch")) == 1

    runner.pending("fetch")[0].future.set_result(ok())
    await settle()

    # refresh coalesced into the status run already in flight
    assert len(runner.calls_for("status")) == 1
    await engine.aclose()


@pytest.mark.asyncio
async def test_directory_changes_keep_one_active_watch(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory
):
    runner.responses["rev-parse"] = ok(".git\n")
    runner.responses["status"] = ok(CLEAN_STATUS)
    first, second = tmp_path / "first", tmp_path / "second"

    engine.on_working_directory_changed(first)
    await settle()
    assert [watch.path for watch in watches.active()] == [(first / ".git").resolve()]

    engine.on_working_directory_changed(second)
    await settle()

    assert len(watches.created) == 2
    assert watches.active() == [watches.created[1]]
    assert watches.created[0].is_active is False
    assert watches.max_active == 1
    assert engine.git_dir == (second / ".git").resolve()
    assert engine.watch is watches.created[1]
    assert [call.cwd for call in runner.calls_for("rev-parse")] == [first, second]


@pytest.mark.asyncio
async def test_absolute_git_dir_is_used_as_is(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory
):
    git_dir = tmp_path / "repo.git"
    runner.responses["rev-parse"] = ok(f"{git_dir}\n")
    runner.responses["status"] = ok(CLEAN_STATUS)

    engine.on_working_directory_changed()
    await settle()

    assert engine.git_dir == git_dir.resolve()
    assert watches.active()[0].path == git_dir.resolve()


@pytest.mark.asyncio
async def test_leaving_repository_tears_down_watch(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory
):
    runner.responses["rev-parse"] = ok(".git\n")
    runner.responses["status"] = ok(CLEAN_STATUS)
    engine.on_working_directory_changed(tmp_path / "repo")
    await settle()
    assert len(watches.active()) == 1

    runner.responses["rev-parse"] = failed(128)
    engine.on_working_directory_changed(tmp_path / "elsewhere")
    await settle()

    assert watches.active() == []
    assert engine.git_dir is None
    assert engine.watch is None


@pytest.mark.asyncio
async def test_stale_discovery_result_is_discarded(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory
):
    runner.responses["status"] = ok(CLEAN_STATUS)
    engine.on_working_directory_changed(tmp_path / "old")
    engine.on_working_directory_changed(tmp_path / "new")
    await settle()
    old_lookup, new_lookup = runner.calls_for("rev-parse")

    new_lookup.future.set_result(ok(".git\n"))
    await settle()
    old_lookup.future.set_result(ok(".git\n"))
    await settle()

    assert len(watches.created) == 1
    assert engine.git_dir == (tmp_path / "new" / ".git").resolve()


@pytest.mark.asyncio
async def test_watch_start_failure_leaves_no_watch(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory, monkeypatch
):
    runner.responses["rev-parse"] = ok(".git\n")
    runner.responses["status"] = ok(CLEAN_STATUS)

    def _fail(self) -> None:
        raise OSError("inotify watch limit reached")

    monkeypatch.setattr("tests.fakes.FakeWatch.start", _fail)
    engine.on_working_directory_changed()
    await settle()

    assert engine.watch is None
    assert engine.git_dir is not None


@pytest.mark.asyncio
async def test_metadata_change_requests_refresh(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory
):
    runner.responses["rev-parse"] = ok(".git\n")
    runner.responses["status"] = ok(CLEAN_STATUS)
    engine.on_working_directory_changed()
    await settle()
    await asyncio.sleep(0.1)
    runs = len(runner.calls_for("status"))

    watches.active()[0].callback("index")
    await settle()
    # the run's own writes to .git land inside the cool-down
    watches.active()[0].callback("index.lock")
    await settle()

    assert len(runner.calls_for("status")) == runs + 1


@pytest.mark.asyncio
async def test_aclose_releases_resources(
    tmp_path: Path, engine: StatusEngine, runner: FakeRunner, watches: FakeWatchFactory
):
    runner.responses["rev-parse"] = ok(".git\n")
    engine.on_working_directory_changed()
    await settle()
    assert len(runner.pending("status")) == 1

    await engine.aclose()

    assert watches.active() == []
    assert engine.watch is None
    assert not engine.busy
    assert engine.request_status_refresh() is False
    assert runner.calls_for("status")[0].future.cancelled()
