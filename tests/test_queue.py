"""
Unit tests for the bounded job queue.

Run with: pytest tests/test_queue.py
"""

import pytest
import simpy

from ossched_sim import BoundedJobQueue, CapacityViolation, Job, JobClass, JobState


def make_job(job_id, job_class=JobClass.SHORT, service_length=1.0, generated_at=0.0):
    return Job(job_id=job_id, job_class=job_class, service_length=service_length, generated_at=generated_at)


@pytest.fixture
def queue():
    return BoundedJobQueue(simpy.Environment(), capacity=3)


def put(queue, job):
    request = queue.slots_free.acquire()
    assert request.triggered
    queue.enqueue(job, request.value)


def take(queue):
    request = queue.slots_filled.acquire()
    assert request.triggered
    return queue.dequeue_head(request.value)


class TestEnqueueDequeue:
    """Permit-guarded FIFO operations."""

    def test_enqueue_moves_slot_from_free_to_filled(self, queue):
        put(queue, make_job(0))

        assert len(queue) == 1
        assert queue.slots_free.value == 2
        assert queue.slots_filled.value == 1
        assert queue.accounted_slots() == queue.capacity

    def test_enqueue_marks_job_queued(self, queue):
        job = make_job(0)
        put(queue, job)

        assert job.state is JobState.QUEUED

    def test_dequeue_is_fifo(self, queue):
        for i in range(3):
            put(queue, make_job(i))

        assert [take(queue).job_id for _ in range(3)] == [0, 1, 2]
        assert queue.held == 3
        assert queue.accounted_slots() == queue.capacity

    def test_enqueue_rejects_filled_permit(self, queue):
        put(queue, make_job(0))
        wrong = queue.slots_filled.acquire().value

        with pytest.raises(CapacityViolation):
            queue.enqueue(make_job(1), wrong)

    def test_dequeue_rejects_free_permit(self, queue):
        put(queue, make_job(0))
        wrong = queue.slots_free.acquire().value

        with pytest.raises(CapacityViolation):
            queue.dequeue_head(wrong)

    def test_permit_cannot_be_reused(self, queue):
        permit = queue.slots_free.acquire().value
        queue.enqueue(make_job(0), permit)

        with pytest.raises(CapacityViolation):
            queue.enqueue(make_job(1), permit)
        assert len(queue) == 1

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            BoundedJobQueue(simpy.Environment(), capacity=0)


class TestRequeueRetire:
    """Slot accounting for preempted and completed jobs."""

    def test_requeue_appends_at_tail(self, queue):
        put(queue, make_job(0))
        put(queue, make_job(1))
        job = take(queue)
        queue.requeue(job)

        assert [j.job_id for j in queue.jobs()] == [1, 0]
        assert queue.held == 0

    def test_requeue_keeps_free_slots_untouched(self, queue):
        put(queue, make_job(0))
        put(queue, make_job(1))
        job = take(queue)
        free_before = queue.slots_free.value
        queue.requeue(job)

        assert queue.slots_free.value == free_before
        assert queue.slots_filled.value == 2
        assert queue.accounted_slots() == queue.capacity

    def test_retire_frees_slot(self, queue):
        put(queue, make_job(0))
        job = take(queue)
        queue.retire(job)

        assert len(queue) == 0
        assert queue.held == 0
        assert queue.slots_free.value == queue.capacity
        assert queue.slots_filled.value == 0

    def test_requeue_requires_held_job(self, queue):
        job = make_job(0)
        put(queue, job)

        with pytest.raises(CapacityViolation):
            queue.requeue(job)

    def test_retire_twice_is_rejected(self, queue):
        put(queue, make_job(0))
        job = take(queue)
        queue.retire(job)

        with pytest.raises(CapacityViolation):
            queue.retire(job)
        assert queue.slots_free.value == queue.capacity


class TestBlocking:
    """Producers block on a full buffer."""

    def test_producer_waits_for_free_slot(self):
        env = simpy.Environment()
        queue = BoundedJobQueue(env, capacity=1)
        enqueued = []

        def producer():
            for i in range(2):
                permit = yield queue.slots_free.acquire()
                queue.enqueue(make_job(i, generated_at=env.now), permit)
                enqueued.append((i, env.now))

        def consumer():
            permit = yield queue.slots_filled.acquire()
            job = queue.dequeue_head(permit)
            yield env.timeout(5)
            queue.retire(job)

        env.process(producer())
        env.process(consumer())
        env.run()

        assert enqueued == [(0, 0), (1, 5)]
        assert len(queue) <= queue.capacity
