"""Tests for background job control."""

import math
import threading
import time

import pytest

from shellkit.core.context import Context
from shellkit.core.errors import JobLimitError, JobNotFoundError, JobTimeoutError
from shellkit.core.jobs import JobRegistry, get_registry, reset_registry


@pytest.fixture
def registry():
    return JobRegistry(context=Context())


class TestJobLifecycle:
    """Test starting and waiting on jobs."""

    def test_true_exits_zero(self, registry):
        """Test waiting on a successful job."""
        assert registry.wait(registry.background("true")) == 0

    def test_false_exits_nonzero(self, registry):
        """Test waiting on a failing job."""
        assert registry.wait(registry.background("false")) != 0

    def test_exit_status_preserved(self, registry):
        """Test the exact exit status is returned."""
        assert registry.wait(registry.background("exit 7")) == 7

    def test_wait_result_output(self, registry):
        """Test the full result carries stdout and stderr."""
        job_id = registry.background("echo out; echo err >&2")
        result = registry.wait_result(job_id)
        assert result.output == "out\n"
        assert result.error == "err\n"

    def test_ids_increase(self, registry):
        """Test job ids start at 1 and increase."""
        first = registry.background("true")
        second = registry.background("true")
        assert (first, second) == (1, 2)
        registry.wait(first)
        registry.wait(second)

    def test_double_wait_not_found(self, registry):
        """Test a second wait on the same id fails."""
        job_id = registry.background("true")
        registry.wait(job_id)
        with pytest.raises(JobNotFoundError) as exc_info:
            registry.wait(job_id)
        assert exc_info.value.job_id == job_id

    def test_unknown_id_not_found(self, registry):
        """Test waiting on an id that was never issued."""
        with pytest.raises(JobNotFoundError):
            registry.wait(42)

    def test_command_expanded(self):
        """Test job commands are expanded against the context."""
        registry = JobRegistry(context=Context({"CODE": "5"}))
        assert registry.wait(registry.background("exit $CODE")) == 5

    def test_spawn_failure(self):
        """Test a shell that cannot start reports a non-zero status."""
        registry = JobRegistry(context=Context(), shell="/nonexistent/shell")
        assert registry.wait(registry.background("true")) != 0


class TestJobTimeout:
    """Test deadline-bounded waits."""

    def test_timeout_returns_promptly(self, registry):
        """Test a timed-out wait returns near the deadline, not at job end."""
        job_id = registry.background("sleep 5")
        start = time.monotonic()
        with pytest.raises(JobTimeoutError) as exc_info:
            registry.wait(job_id, timeout=1)
        elapsed = time.monotonic() - start
        assert 0.9 <= elapsed < 3
        assert exc_info.value.job_id == job_id
        assert exc_info.value.timeout == 1

    def test_timed_out_job_removed(self, registry):
        """Test a timed-out job is gone from the registry but listed as detached."""
        job_id = registry.background("sleep 2")
        with pytest.raises(JobTimeoutError):
            registry.wait(job_id, timeout=0.1)
        assert registry.list() == []
        assert registry.detached() == [(job_id, "sleep 2")]
        with pytest.raises(JobNotFoundError):
            registry.wait(job_id)

    def test_completes_within_timeout(self, registry):
        """Test a fast job finishes before its deadline."""
        assert registry.wait(registry.background("true"), timeout=5) == 0

    def test_infinite_timeout_waits(self, registry):
        """Test an infinite timeout waits like no timeout."""
        assert registry.wait(registry.background("true"), timeout=math.inf) == 0

    def test_huge_timeout(self, registry):
        """Test a timeout beyond the platform maximum is clamped."""
        assert registry.wait(registry.background("true"), timeout=1e300) == 0

    def test_interrupted_wait_keeps_job(self, registry, monkeypatch):
        """Test a wait that fails for another reason leaves the job registered."""
        job_id = registry.background("true")
        job = registry._jobs[job_id]

        def interrupted(*args, **kwargs):
            raise RuntimeError("interrupted")

        monkeypatch.setattr(job.channel, "get", interrupted)
        with pytest.raises(RuntimeError):
            registry.wait(job_id)
        assert registry.list() == [(job_id, "true")]

        monkeypatch.undo()
        assert registry.wait(job_id) == 0

    def test_detached_pruned_on_background(self, registry):
        """Test finished detached jobs are dropped when new jobs start."""
        job_id = registry.background("sleep 0.3")
        with pytest.raises(JobTimeoutError):
            registry.wait(job_id, timeout=0.05)
        assert job_id in registry._detached
        time.sleep(0.8)
        new_id = registry.background("true")
        assert registry._detached == {}
        assert registry.wait(new_id) == 0

    def test_zero_timeout_on_finished_job(self, registry):
        """Test a zero timeout still collects an already finished job."""
        job_id = registry.background("true")
        time.sleep(0.5)
        assert registry.wait(job_id, timeout=0) == 0


class TestJobRegistry:
    """Test listing, limits and concurrency."""

    def test_list(self, registry):
        """Test registered jobs are listed in id order."""
        first = registry.background("sleep 0.2")
        second = registry.background("true")
        assert registry.list() == [(first, "sleep 0.2"), (second, "true")]
        assert len(registry) == 2
        registry.wait(first)
        assert registry.list() == [(second, "true")]
        registry.wait(second)
        assert len(registry) == 0

    def test_max_jobs(self):
        """Test the job limit is enforced until a job is waited on."""
        registry = JobRegistry(context=Context(), max_jobs=1)
        job_id = registry.background("true")
        with pytest.raises(JobLimitError):
            registry.background("true")
        registry.wait(job_id)
        registry.wait(registry.background("true"))

    def test_many_concurrent_jobs(self, registry):
        """Test jobs run concurrently and each reports its own status."""
        start = time.monotonic()
        ids = [registry.background(f"sleep 0.5; exit {i % 3}") for i in range(20)]
        statuses = [registry.wait(job_id) for job_id in ids]
        assert statuses == [i % 3 for i in range(20)]
        assert time.monotonic() - start < 5
        assert len(set(ids)) == 20

    def test_blocked_wait_does_not_block_registry(self, registry):
        """Test a wait in another thread leaves the registry usable."""
        job_id = registry.background("sleep 1")
        results = []
        waiter = threading.Thread(target=lambda: results.append(registry.wait(job_id)))
        waiter.start()
        time.sleep(0.1)

        start = time.monotonic()
        registry.list()
        assert registry.wait(registry.background("true")) == 0
        assert time.monotonic() - start < 0.5

        waiter.join(timeout=5)
        assert not waiter.is_alive()
        assert results == [0]

    def test_default_registry(self):
        """Test reset_registry replaces the process-wide registry."""
        fresh = reset_registry(context=Context())
        assert get_registry() is fresh
        assert fresh.list() == []
