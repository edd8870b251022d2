"""
Unit tests for the counting semaphore and its blocking helpers.

Run with: pytest tests/test_semaphore.py
"""

import pytest
import simpy

from ossched_sim import CountingSemaphore, Permit, StopReason, acquire_permit, hold


def waiter(env, sem, log, name="w"):
    try:
        permit = yield from acquire_permit(sem)
    except simpy.Interrupt as interrupt:
        log.append((name, "stopped", env.now, interrupt.cause))
        return
    log.append((name, "acquired", env.now))
    return permit


def release_at(env, sem, at):
    yield env.timeout(at)
    sem.release()


def interrupt_at(env, proc, at, cause=None):
    yield env.timeout(at)
    proc.interrupt(cause)


class TestAcquireRelease:
    """Basic permit accounting."""

    def test_acquire_available_permit_immediately(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 2)
        log = []
        env.process(waiter(env, sem, log))
        env.run()

        assert log == [("w", "acquired", 0)]
        assert sem.value == 1
        assert sem.outstanding == 1

    def test_acquire_blocks_until_release(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 0)
        log = []
        env.process(waiter(env, sem, log))
        env.process(release_at(env, sem, 3))
        env.run()

        assert log == [("w", "acquired", 3)]
        assert sem.value == 0

    def test_release_wakes_at_most_one_waiter(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 0)
        log = []
        env.process(waiter(env, sem, log, "a"))
        env.process(waiter(env, sem, log, "b"))
        env.process(release_at(env, sem, 1))
        env.run(until=5)

        assert log == [("a", "acquired", 1)]
        assert sem.waiting == 1
        assert sem.value == 0

    def test_waiters_are_served_oldest_first(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 0)
        log = []
        for name in "abc":
            env.process(waiter(env, sem, log, name))
        for at in (1, 2, 3):
            env.process(release_at(env, sem, at))
        env.run()

        assert [entry[0] for entry in log] == ["a", "b", "c"]
        assert [entry[2] for entry in log] == [1, 2, 3]

    def test_negative_initial_value_rejected(self):
        env = simpy.Environment()
        with pytest.raises(ValueError):
            CountingSemaphore(env, -1)

    def test_granted_request_carries_permit(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 1)
        request = sem.acquire()

        assert request.triggered
        assert isinstance(request.value, Permit)
        assert request.value.semaphore is sem


class TestCancellation:
    """Interrupted acquires must never leak a permit."""

    def test_stop_while_waiting_withdraws_request(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 0)
        log = []
        proc = env.process(waiter(env, sem, log))
        env.process(interrupt_at(env, proc, 1, StopReason.CANCELLED))
        env.process(release_at(env, sem, 2))
        env.run()

        assert log == [("w", "stopped", 1, StopReason.CANCELLED)]
        assert sem.waiting == 0
        assert sem.value == 1
        assert sem.outstanding == 0

    def test_stop_after_grant_hands_permit_back(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 0)
        log = []
        proc = env.process(waiter(env, sem, log))

        def release_then_stop():
            yield env.timeout(1)
            sem.release()
            # The grant is scheduled but not yet delivered when the stop lands.
            proc.interrupt(StopReason.CANCELLED)

        env.process(release_then_stop())
        env.run()

        assert log == [("w", "stopped", 1, StopReason.CANCELLED)]
        assert sem.value == 1
        assert sem.outstanding == 0

    def test_spurious_wake_reblocks(self):
        env = simpy.Environment()
        sem = CountingSemaphore(env, 0)
        log = []
        proc = env.process(waiter(env, sem, log))
        env.process(interrupt_at(env, proc, 1))
        env.process(release_at(env, sem, 2))
        env.run()

        assert log == [("w", "acquired", 2)]
        assert sem.waiting == 0
        assert sem.value == 0


class TestHold:
    """Delays survive spurious wakes."""

    def test_hold_resumes_after_spurious_wake(self):
        env = simpy.Environment()
        done = []

        def sleeper():
            yield from hold(env, 10)
            done.append(env.now)

        proc = env.process(sleeper())
        env.process(interrupt_at(env, proc, 4))
        env.run()

        assert done == [10]

    def test_hold_raises_on_stop(self):
        env = simpy.Environment()
        log = []

        def sleeper():
            try:
                yield from hold(env, 10)
            except simpy.Interrupt as interrupt:
                log.append((env.now, interrupt.cause))

        proc = env.process(sleeper())
        env.process(interrupt_at(env, proc, 4, StopReason.SHUTDOWN))
        env.run()

        assert log == [(4, StopReason.SHUTDOWN)]
