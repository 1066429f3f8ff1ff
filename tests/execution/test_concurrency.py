"""Claims racing across threads never put two entries of one application in progress."""

import threading

import pytest

from shipyard.execution.models import DeploymentStatus


@pytest.mark.integration
class TestConcurrentClaims:
    def test_exactly_one_winner(self, ledger, target):
        for i in range(5):
            ledger.enqueue(*target, commit=f"c{i}")

        barrier = threading.Barrier(8)
        winners = []
        errors = []

        def race(worker: int) -> None:
            barrier.wait()
            try:
                entry = ledger.claim("app-1", f"w{worker}")
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)
                return
            if entry is not None:
                winners.append(entry)

        threads = [threading.Thread(target=race, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(winners) == 1
        assert len(ledger.list_active("app-1")) == 5
        in_progress = [e for e in ledger.list_active("app-1") if e.status == DeploymentStatus.IN_PROGRESS]
        assert [e.deployment_token for e in in_progress] == [winners[0].deployment_token]
        assert ledger.get_in_progress("app-1").worker_id == winners[0].worker_id

    def test_racing_finishers_one_wins(self, ledger, target):
        entry = ledger.enqueue(*target)
        ledger.claim("app-1")
        barrier = threading.Barrier(2)
        results = []

        def finish(status: DeploymentStatus) -> None:
            barrier.wait()
            try:
                results.append(ledger.update_status(entry.deployment_token, status).status)
            except ValueError:
                results.append(None)

        threads = [
            threading.Thread(target=finish, args=(DeploymentStatus.FINISHED,)),
            threading.Thread(target=finish, args=(DeploymentStatus.FAILED,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(None) == 1
        final = ledger.get(entry.deployment_token).status
        assert final in results


@pytest.mark.integration
class TestConcurrentLogAppends:
    def test_no_lost_lines(self, ledger, target):
        entry = ledger.enqueue(*target)
        barrier = threading.Barrier(8)
        errors = []

        def append(worker: int) -> None:
            barrier.wait()
            try:
                for i in range(10):
                    ledger.add_log_entry(entry.deployment_token, f"w{worker} line {i}")
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=append, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        logs = ledger.get(entry.deployment_token).logs
        assert len(logs) == 80
        assert sorted(line["order"] for line in logs) == list(range(1, 81))
        for worker in range(8):
            mine = [line["output"] for line in logs if line["output"].startswith(f"w{worker} ")]
            assert mine == [f"w{worker} line {i}" for i in range(10)]
