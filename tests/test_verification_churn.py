"""Verification Test: sampling while processes come and go.

Processes that exit between listing and inspection, or that the test user may
not inspect, must never fail a tick.
"""

import asyncio
import multiprocessing
import random
import time

import pytest

from resmon.sampler import SnapshotSampler
from resmon.sensors import PsutilSensors


def dummy_worker(duration: float = 30.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def spawn(count: int, duration: float) -> list[multiprocessing.Process]:
    processes = []
    for _ in range(count):
        p = multiprocessing.Process(target=dummy_worker, args=(duration,))
        p.start()
        processes.append(p)
    return processes


def reap(processes: list[multiprocessing.Process]) -> None:
    for p in processes:
        if p.is_alive():
            p.terminate()
    for p in processes:
        p.join(timeout=1.0)


class TestProcessChurn:
    """Sampling resilience under process churn."""

    @pytest.mark.asyncio
    async def test_sampling_survives_process_termination(self):
        """
        Test that sampling keeps succeeding while processes are killed.

        Half of the spawned processes are terminated between and during
        samples; every sample must still produce a snapshot.
        """
        processes = spawn(40, 60.0)
        sampler = SnapshotSampler(PsutilSensors())
        try:
            snapshot = await sampler.sample()
            assert snapshot.processes

            for p in random.sample(processes, 20):
                p.terminate()
                snapshot = await sampler.sample()
                assert len(snapshot.processes) <= 10
        finally:
            reap(processes)

    @pytest.mark.asyncio
    async def test_rapid_creation_and_termination(self):
        """Test concurrent samples stay valid during rapid churn."""
        sampler = SnapshotSampler(PsutilSensors())
        processes: list[multiprocessing.Process] = []
        snapshots = 0
        try:
            deadline = time.monotonic() + 2.0
            while time.monotonic() < deadline:
                processes.extend(spawn(3, 10.0))
                alive = [p for p in processes if p.is_alive()]
                if len(alive) > 8:
                    for p in random.sample(alive, 3):
                        p.terminate()
                results = await asyncio.gather(sampler.sample(), sampler.sample())
                snapshots += len(results)
        finally:
            reap(processes)
        assert snapshots >= 2

    @pytest.mark.asyncio
    async def test_many_processes_ranked(self):
        """Test a crowded process table is still cut to the top ten by CPU."""
        processes = spawn(60, 30.0)
        try:
            snapshot = await SnapshotSampler(PsutilSensors()).sample()
            cpu = [p.cpu_percent for p in snapshot.processes]
            assert len(cpu) == 10
            assert cpu == sorted(cpu, reverse=True)
            assert all(len(p.command) <= 50 for p in snapshot.processes)
        finally:
            reap(processes)
