from __future__ import annotations

import sys

from common.jobs import JOB_ENV, BackgroundJobs, workflow_argv


class _Proc:
    def __init__(self, pid):
        self.pid = pid


class _Spawner:
    def __init__(self):
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append((argv, kwargs))
        return _Proc(4242)


def test_start_records_pid_and_detaches(tmp_path):
    spawner = _Spawner()
    jobs = BackgroundJobs(tmp_path / "jobs", spawner=spawner, alive=lambda pid: True)

    assert jobs.start("sync", ["bw-alfred", "-sync"]) is True

    argv, kwargs = spawner.calls[0]
    assert argv == ["bw-alfred", "-sync"]
    assert kwargs["start_new_session"] is True
    assert kwargs["env"][JOB_ENV] == "sync"
    assert jobs.pid("sync") == 4242
    assert jobs.is_running("sync")


def test_job_env_comes_from_the_invocation(tmp_path, monkeypatch):
    monkeypatch.setenv("UNRELATED_PARENT_VAR", "leak")
    spawner = _Spawner()
    jobs = BackgroundJobs(tmp_path, spawner=spawner, alive=lambda pid: True, env={"alfred_workflow_cache": "/c"})

    jobs.start("sync", ["x"])

    _, kwargs = spawner.calls[0]
    assert kwargs["env"] == {"alfred_workflow_cache": "/c", JOB_ENV: "sync"}


def test_second_start_is_refused_while_running(tmp_path):
    spawner = _Spawner()
    jobs = BackgroundJobs(tmp_path, spawner=spawner, alive=lambda pid: True)

    jobs.start("icons", ["x"])
    assert jobs.start("icons", ["x"]) is False
    assert len(spawner.calls) == 1


def test_stale_pid_file_is_cleaned_up(tmp_path):
    (tmp_path / "sync.pid").write_text("999999")
    jobs = BackgroundJobs(tmp_path, spawner=_Spawner(), alive=lambda pid: False)

    assert jobs.is_running("sync") is False
    assert not (tmp_path / "sync.pid").exists()


def test_release_and_garbage_pid(tmp_path):
    jobs = BackgroundJobs(tmp_path, spawner=_Spawner(), alive=lambda pid: True)
    (tmp_path / "sync.pid").write_text("not a pid")

    assert jobs.pid("sync") is None
    assert jobs.is_running("sync") is False

    jobs.start("sync", ["x"])
    jobs.release("sync")
    jobs.release("sync")
    assert jobs.is_running("sync") is False


def test_workflow_argv_reinvokes_handler_module():
    assert workflow_argv("-sync", "-force") == [sys.executable, "-m", "workflow.handler", "-sync", "-force"]
