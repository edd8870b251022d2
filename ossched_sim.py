"""
ossched_sim.py
--------------
**SUMMARY**:

This module implements a SimPy simulation of an operating-system job scheduler
in which synthetic jobs are produced into a bounded buffer and consumed by one
or more virtual processors.

• **Producers:** One `JobGenerator` per job class (short and long) creates jobs
  at a fixed cadence. A shared countdown (`SimulationContext.take_quota`) limits
  how many jobs are generated in total; once it reaches zero the generators stop.

• **Bounded Buffer:** `BoundedJobQueue` is a FIFO guarded by a pair of
  `CountingSemaphore` instances. `slots_free` starts at the buffer capacity and
  `slots_filled` at zero. A permit returned by the semaphore must be presented
  to the queue before a job can be added or removed, so the buffer can never be
  overfilled or read while empty.

• **Scheduling Policies:** Each `Processor` is a SimPy process that claims the
  head job and runs it under one of two policies:

  - `FcfsPolicy` runs every job to completion in one segment.
  - `RoundRobinPolicy` runs at most one timeslice, then puts the job back at
    the tail of the buffer. With affinity enabled, a job resuming on a
    different processor than the one that last ran it pays a fixed penalty.

• **Statistics:** `StatisticsAggregator` keeps running min/max/total/average
  wait and service times per job class and accumulated time per processor.
  `StatisticsAggregator.summarize` turns them into throughput and utilization
  figures once the run is over.

• **Interruption:** Any actor can be woken with a SimPy interrupt. A wake whose
  cause is a `StopReason` ends the actor; any other wake is spurious and the
  actor simply re-blocks. A cancelled acquire never leaks a permit.

Usage example:

```
summary = start(num_processors=2,
                num_job_classes=2,
                policy="rr",
                timeslice=8,
                affinity_enabled=True,
                total_jobs=50,
                buffer_capacity=10)
print(summary.as_dict())
```

This runs a round-robin simulation with two processors, both job classes,
a timeslice of 8 time units and the affinity penalty switched on. The call
blocks until every generated job has completed.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Any, Deque, Dict, List, Optional, Union
import logging
import math

import simpy
import simpy.rt

logger = logging.getLogger(__name__)


DEFAULT_NUM_PROCESSORS = 2
DEFAULT_BUFFER_CAPACITY = 10
DEFAULT_TOTAL_JOBS = 50
DEFAULT_TIMESLICE = 8.0
# Delay paid when a job resumes on a processor other than its last one.
DEFAULT_AFFINITY_PENALTY = 1.0
# Throughput is reported as completions per this many time units.
DEFAULT_THROUGHPUT_SCALE = 100.0


class JobClass(Enum):
    SHORT = "short"
    LONG = "long"


class JobState(Enum):
    CREATED = "created"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"


class Policy(Enum):
    FCFS = "fcfs"
    ROUND_ROBIN = "rr"


class StopReason(Enum):
    """Interrupt causes that end an actor instead of waking it spuriously."""

    SHUTDOWN = "shutdown"
    CANCELLED = "cancelled"
    TIME_LIMIT = "time_limit"


class SchedulerError(RuntimeError):
    """Base class for scheduler invariant violations."""


class CapacityViolation(SchedulerError):
    """The job queue was used without holding the matching permit."""


@dataclass(frozen=True)
class JobClassProfile:
    """Service demand and arrival cadence for one class of jobs."""

    job_class: JobClass
    service_length: float
    inter_arrival: float

    def __post_init__(self):
        if self.service_length <= 0:
            raise ValueError("service_length must be strictly positive")
        if self.inter_arrival < 0:
            raise ValueError("inter_arrival cannot be negative")


FCFS_PROFILES: Dict[JobClass, JobClassProfile] = {
    JobClass.SHORT: JobClassProfile(JobClass.SHORT, service_length=1.0, inter_arrival=2.0),
    JobClass.LONG: JobClassProfile(JobClass.LONG, service_length=10.0, inter_arrival=5.0),
}

ROUND_ROBIN_PROFILES: Dict[JobClass, JobClassProfile] = {
    JobClass.SHORT: JobClassProfile(JobClass.SHORT, service_length=5.0, inter_arrival=2.0),
    JobClass.LONG: JobClassProfile(JobClass.LONG, service_length=50.0, inter_arrival=5.0),
}


def default_profiles(policy: "Policy") -> Dict[JobClass, JobClassProfile]:
    """Return the job class profiles used by `policy` unless overridden."""
    if Policy(policy) is Policy.ROUND_ROBIN:
        return dict(ROUND_ROBIN_PROFILES)
    return dict(FCFS_PROFILES)


# --- Counting semaphore ---
class Permit:
    """Proof that one permit was taken from a `CountingSemaphore`."""

    def __init__(self, semaphore: "CountingSemaphore"):
        self.semaphore = semaphore
        self.spent = False

    def spend(self) -> None:
        if self.spent:
            raise CapacityViolation("permit has already been used")
        self.spent = True
        self.semaphore._outstanding -= 1


class Acquire(simpy.Event):
    """Request for one permit. Fires with a `Permit` once granted."""

    def __init__(self, semaphore: "CountingSemaphore"):
        super().__init__(semaphore.env)
        self.semaphore = semaphore
        semaphore._waiters.append(self)
        semaphore._grant()

    def cancel(self) -> None:
        """Withdraw the request.

        A request still waiting is removed from the wait list. A request that
        was granted but never delivered to its caller (the caller was
        interrupted first) hands its permit straight back.
        """
        if not self.triggered:
            self.semaphore._waiters.remove(self)
            return
        permit = self.value
        if not permit.spent:
            permit.spent = True
            self.semaphore._outstanding -= 1
            self.semaphore.release()


class CountingSemaphore:
    """Blocking counting semaphore for SimPy processes.

    The permit count never goes negative: `acquire()` only completes once a
    permit is available and `release()` wakes at most one waiter, oldest
    first.
    """

    def __init__(self, env: simpy.Environment, value: int = 0):
        if value < 0:
            raise ValueError("semaphore value cannot be negative")
        self.env = env
        self._value = value
        self._outstanding = 0
        self._waiters: Deque[Acquire] = deque()

    @property
    def value(self) -> int:
        return self._value

    @property
    def waiting(self) -> int:
        """Number of blocked acquire requests."""
        return len(self._waiters)

    @property
    def outstanding(self) -> int:
        """Permits granted to a caller but not spent yet."""
        return self._outstanding

    def acquire(self) -> Acquire:
        return Acquire(self)

    def release(self) -> None:
        self._value += 1
        self._grant()

    def _grant(self) -> None:
        while self._waiters and self._value > 0:
            request = self._waiters.popleft()
            self._value -= 1
            self._outstanding += 1
            request.succeed(Permit(self))


def _is_stop(interrupt: simpy.Interrupt) -> bool:
    return isinstance(interrupt.cause, StopReason)


def acquire_permit(semaphore: CountingSemaphore):
    """SimPy sub-process that blocks until a permit is held and returns it.

    Spurious wakes withdraw the pending request and block again. A stop
    interrupt withdraws the request and is re-raised to the caller.
    """
    while True:
        request = semaphore.acquire()
        try:
            permit = yield request
        except simpy.Interrupt as interrupt:
            request.cancel()
            if _is_stop(interrupt):
                raise
            logger.debug("t=%.3f spurious wake while acquiring a permit", semaphore.env.now)
            continue
        return permit


def hold(env: simpy.Environment, duration: float):
    """SimPy sub-process that blocks for `duration`, riding out spurious wakes."""
    remaining = duration
    while remaining > 0:
        started = env.now
        try:
            yield env.timeout(remaining)
            return
        except simpy.Interrupt as interrupt:
            if _is_stop(interrupt):
                raise
            remaining -= env.now - started
            logger.debug("t=%.3f spurious wake during a delay, %.3f left", env.now, remaining)


# --- Jobs ---
@dataclass
class Segment:
    """One uninterrupted stretch of execution of a job on a processor."""

    processor_id: int
    dispatched_at: float
    started_at: float
    duration: float
    penalty: float = 0.0


@dataclass
class Job:
    """Represents one unit of synthetic work.

    Attributes
    ----------
    job_id: Unique, increasing identifier assigned at creation.
    job_class: Short or long; determines the nominal service length.
    service_length: Nominal service length for this job.
    generated_at: Timestamp at creation.

    remaining_service: Service units still owed.
    serviced_at: Start of the most recent execution segment.
    completed_at: Timestamp when remaining_service reached zero.
    last_processor_id: Processor that last ran the job (None before the first run).
    segments: Every execution segment, in order.
    """

    job_id: int
    job_class: JobClass
    service_length: float
    generated_at: float
    remaining_service: float = field(init=False)
    state: JobState = JobState.CREATED
    serviced_at: Optional[float] = None
    completed_at: Optional[float] = None
    last_processor_id: Optional[int] = None
    segments: List[Segment] = field(default_factory=list)

    def __post_init__(self):
        self.remaining_service = self.service_length

    @property
    def is_complete(self) -> bool:
        return self.state is JobState.COMPLETED

    @property
    def service_time(self) -> float:
        if self.completed_at is None or self.serviced_at is None:
            raise SchedulerError(f"job {self.job_id} has not completed")
        return self.completed_at - self.serviced_at

    @property
    def wait_time(self) -> float:
        service_time = self.service_time
        return self.completed_at - self.generated_at - service_time

    def begin_segment(self, processor_id: int, now: float) -> None:
        if self.is_complete or self.remaining_service <= 0:
            raise SchedulerError(f"job {self.job_id} has no service left to run")
        self.last_processor_id = processor_id
        self.serviced_at = now
        self.state = JobState.RUNNING


# --- Bounded job queue ---
class BoundedJobQueue:
    """FIFO buffer of jobs shared by the generators and the processors.

    Occupancy is bounded by the `slots_free` / `slots_filled` semaphore pair.
    Every operation that changes the sequence runs to completion without
    yielding to the event loop, so the deque is never seen half-updated.
    """

    def __init__(self, env: simpy.Environment, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be strictly positive")
        self.env = env
        self.capacity = capacity
        self.slots_free = CountingSemaphore(env, capacity)
        self.slots_filled = CountingSemaphore(env, 0)
        self._jobs: Deque[Job] = deque()
        self._held: Dict[int, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def held(self) -> int:
        """Jobs taken off the queue by a processor and not yet returned or retired."""
        return len(self._held)

    def jobs(self) -> List[Job]:
        return list(self._jobs)

    def enqueue(self, job: Job, permit: Permit) -> None:
        """Append `job` at the tail using a held `slots_free` permit."""
        self._check_permit(permit, self.slots_free)
        permit.spend()
        job.state = JobState.QUEUED
        self._jobs.append(job)
        self.slots_filled.release()

    def dequeue_head(self, permit: Permit) -> Job:
        """Remove and return the head job using a held `slots_filled` permit."""
        self._check_permit(permit, self.slots_filled)
        if not self._jobs:
            raise SchedulerError("slots_filled permit held but the queue is empty")
        permit.spend()
        job = self._jobs.popleft()
        self._held[job.job_id] = job
        return job

    def requeue(self, job: Job) -> None:
        """Put a preempted job back at the tail.

        The job never left the bounded count, so `slots_free` is untouched;
        one `slots_filled` permit is released so a processor can claim it.
        """
        self._release_held(job)
        job.state = JobState.QUEUED
        self._jobs.append(job)
        self.slots_filled.release()

    def retire(self, job: Job) -> None:
        """Drop a completed job from the system and free its slot."""
        self._release_held(job)
        self.slots_free.release()

    def accounted_slots(self) -> int:
        """Sum of every place a slot can be; equals `capacity` between events."""
        return (
            self.slots_free.value
            + self.slots_free.outstanding
            + self.slots_filled.value
            + self.slots_filled.outstanding
            + self.held
        )

    def _check_permit(self, permit: Permit, semaphore: CountingSemaphore) -> None:
        if not isinstance(permit, Permit) or permit.semaphore is not semaphore:
            raise CapacityViolation("operation requires a permit from the matching semaphore")
        if permit.spent:
            raise CapacityViolation("permit has already been used")

    def _release_held(self, job: Job) -> None:
        if self._held.pop(job.job_id, None) is None:
            raise CapacityViolation(f"job {job.job_id} is not held by a processor")


# --- Statistics ---
@dataclass
class RunningStat:
    """Running min/max/total and online mean of one measure."""

    minimum: float = math.inf
    maximum: float = 0.0
    total: float = 0.0
    average: float = 0.0
    count: int = 0

    def observe(self, value: float) -> None:
        self.count += 1
        if value < self.minimum:
            self.minimum = value
        if value > self.maximum:
            self.maximum = value
        self.total += value
        # Online update, not total / count.
        self.average = (self.average * (self.count - 1) + value) / self.count


@dataclass
class ClassAccumulator:
    job_class: JobClass
    wait: RunningStat = field(default_factory=RunningStat)
    service: RunningStat = field(default_factory=RunningStat)
    completions: int = 0

    @property
    def count(self) -> int:
        return self.completions


@dataclass
class ProcessorAccumulator:
    processor_id: int
    utilization_time: float = 0.0
    segments: int = 0
    penalties: int = 0


@dataclass(frozen=True)
class ClassSummary:
    job_class: JobClass
    count: int
    min_wait: float
    max_wait: float
    avg_wait: float
    total_wait: float
    min_service: float
    max_service: float
    avg_service: float
    total_service: float
    throughput: float


@dataclass(frozen=True)
class ProcessorSummary:
    processor_id: int
    utilization: float
    segments: int
    penalties: int

    @property
    def utilization_percent(self) -> float:
        return self.utilization * 100.0


@dataclass(frozen=True)
class SimulationSummary:
    """Read-only view of the final statistics of a run."""

    policy: Policy
    elapsed: float
    classes: Dict[JobClass, ClassSummary]
    processors: List[ProcessorSummary]
    total_throughput: float
    jobs_issued: int
    jobs_completed: int
    stop_reason: Optional[StopReason] = None

    @property
    def jobs_pending(self) -> int:
        return self.jobs_issued - self.jobs_completed

    def as_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "policy": self.policy.value,
            "elapsed": self.elapsed,
            "jobs_issued": self.jobs_issued,
            "jobs_completed": self.jobs_completed,
            "total_throughput": self.total_throughput,
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
        }
        for job_class, stats in self.classes.items():
            prefix = job_class.value
            result[f"{prefix}_count"] = stats.count
            result[f"{prefix}_throughput"] = stats.throughput
            result[f"{prefix}_min_wait"] = stats.min_wait
            result[f"{prefix}_max_wait"] = stats.max_wait
            result[f"{prefix}_avg_wait"] = stats.avg_wait
            result[f"{prefix}_min_service"] = stats.min_service
            result[f"{prefix}_max_service"] = stats.max_service
            result[f"{prefix}_avg_service"] = stats.avg_service
        for proc in self.processors:
            result[f"processor_{proc.processor_id}_utilization_percent"] = proc.utilization_percent
        return result


class StatisticsAggregator:
    """Collects per-class and per-processor statistics as jobs complete."""

    def __init__(self, job_classes: List[JobClass], num_processors: int):
        self.classes: Dict[JobClass, ClassAccumulator] = {
            job_class: ClassAccumulator(job_class) for job_class in job_classes
        }
        self.processors: List[ProcessorAccumulator] = [
            ProcessorAccumulator(i) for i in range(num_processors)
        ]

    def record_completion(self, job: Job) -> None:
        service_time = job.completed_at - job.serviced_at
        wait_time = job.completed_at - job.generated_at - service_time
        acc = self.classes.setdefault(job.job_class, ClassAccumulator(job.job_class))
        acc.completions += 1
        acc.wait.observe(wait_time)
        acc.service.observe(service_time)

    def record_segment(self, processor_id: int, duration: float, penalty: float = 0.0) -> None:
        """Charge one executed segment, partial or final, to `processor_id`."""
        proc = self.processors[processor_id]
        proc.utilization_time += duration
        proc.segments += 1
        if penalty > 0:
            proc.penalties += 1

    def summarize(
        self,
        policy: Policy,
        elapsed: float,
        *,
        throughput_scale: float = DEFAULT_THROUGHPUT_SCALE,
        jobs_issued: int = 0,
        stop_reason: Optional[StopReason] = None,
    ) -> SimulationSummary:
        """Derive throughput and utilization from the accumulated state."""

        def rate(amount: float) -> float:
            return amount / elapsed if elapsed > 0 else 0.0

        classes = {}
        for job_class, acc in self.classes.items():
            classes[job_class] = ClassSummary(
                job_class=job_class,
                count=acc.count,
                min_wait=acc.wait.minimum,
                max_wait=acc.wait.maximum,
                avg_wait=acc.wait.average,
                total_wait=acc.wait.total,
                min_service=acc.service.minimum,
                max_service=acc.service.maximum,
                avg_service=acc.service.average,
                total_service=acc.service.total,
                throughput=rate(acc.completions) * throughput_scale,
            )
        processors = [
            ProcessorSummary(
                processor_id=proc.processor_id,
                utilization=rate(proc.utilization_time),
                segments=proc.segments,
                penalties=proc.penalties,
            )
            for proc in self.processors
        ]
        completed = sum(acc.completions for acc in self.classes.values())
        return SimulationSummary(
            policy=policy,
            elapsed=elapsed,
            classes=classes,
            processors=processors,
            total_throughput=rate(completed) * throughput_scale,
            jobs_issued=jobs_issued,
            jobs_completed=completed,
            stop_reason=stop_reason,
        )


# --- Scheduling policies ---
class SchedulingPolicy(ABC):
    """Decides how much service a processor grants a job per dispatch."""

    policy: Policy

    @abstractmethod
    def allotment(self, job: Job) -> float:
        """Length of the next execution segment for `job`."""

    def switch_penalty(self, job: Job, processor_id: int) -> float:
        """Delay paid before the segment starts on `processor_id`."""
        return 0.0


class FcfsPolicy(SchedulingPolicy):
    """Run-to-completion, first come first served."""

    policy = Policy.FCFS

    def allotment(self, job: Job) -> float:
        return job.remaining_service


class RoundRobinPolicy(SchedulingPolicy):
    """Preemptive round robin with a fixed timeslice and optional affinity penalty."""

    policy = Policy.ROUND_ROBIN

    def __init__(
        self,
        timeslice: float = DEFAULT_TIMESLICE,
        affinity: bool = False,
        penalty: float = DEFAULT_AFFINITY_PENALTY,
    ):
        if timeslice <= 0:
            raise ValueError("timeslice must be strictly positive")
        if penalty < 0:
            raise ValueError("affinity penalty cannot be negative")
        self.timeslice = timeslice
        self.affinity = affinity
        self.penalty = penalty

    def allotment(self, job: Job) -> float:
        return min(job.remaining_service, self.timeslice)

    def switch_penalty(self, job: Job, processor_id: int) -> float:
        if not self.affinity or job.last_processor_id is None:
            return 0.0
        if job.last_processor_id == processor_id:
            return 0.0
        return self.penalty


def make_policy(
    policy: Union[Policy, str],
    timeslice: float = DEFAULT_TIMESLICE,
    affinity: bool = False,
    penalty: float = DEFAULT_AFFINITY_PENALTY,
) -> SchedulingPolicy:
    if Policy(policy) is Policy.ROUND_ROBIN:
        return RoundRobinPolicy(timeslice, affinity=affinity, penalty=penalty)
    return FcfsPolicy()


# --- Configuration and shared run state ---
@dataclass
class SimulationConfig:
    """Parameters of one simulation run.

    Parameters
    ----------
    num_processors : int
        Number of virtual processors (consumers).
    num_job_classes : int
        Number of job generators; 1 runs short jobs only, 2 adds long jobs.
    policy : Policy or str
        `Policy.FCFS` / "fcfs" or `Policy.ROUND_ROBIN` / "rr".
    timeslice : float
        Round-robin timeslice.
    affinity : bool
        Charge `affinity_penalty` when a job resumes on another processor.
    total_jobs : int
        Jobs to generate before the generators stop.
    buffer_capacity : int
        Maximum number of jobs in the system at once.
    profiles : dict, optional
        Service length and inter-arrival per job class. Defaults depend on policy.
    throughput_scale : float
        Throughput is reported as completions per this many time units.
    time_limit : float, optional
        Cancel the run if it has not drained by this simulated time.
    realtime_factor : float, optional
        Pace the run against the wall clock, in seconds per time unit.
    """

    num_processors: int = DEFAULT_NUM_PROCESSORS
    num_job_classes: int = len(JobClass)
    policy: Union[Policy, str] = Policy.FCFS
    timeslice: float = DEFAULT_TIMESLICE
    affinity: bool = False
    total_jobs: int = DEFAULT_TOTAL_JOBS
    buffer_capacity: int = DEFAULT_BUFFER_CAPACITY
    profiles: Optional[Dict[JobClass, JobClassProfile]] = None
    affinity_penalty: float = DEFAULT_AFFINITY_PENALTY
    throughput_scale: float = DEFAULT_THROUGHPUT_SCALE
    time_limit: Optional[float] = None
    realtime_factor: Optional[float] = None

    def __post_init__(self):
        self.policy = Policy(self.policy)
        if self.num_processors <= 0:
            raise ValueError("num_processors must be at least 1")
        if not 0 <= self.num_job_classes <= len(JobClass):
            raise ValueError(f"num_job_classes must be between 0 and {len(JobClass)}")
        if self.timeslice <= 0:
            raise ValueError("timeslice must be strictly positive")
        if self.total_jobs < 0:
            raise ValueError("total_jobs cannot be negative")
        if self.buffer_capacity <= 0:
            raise ValueError("buffer_capacity must be strictly positive")
        if self.affinity_penalty < 0:
            raise ValueError("affinity_penalty cannot be negative")
        if self.throughput_scale <= 0:
            raise ValueError("throughput_scale must be strictly positive")
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError("time_limit must be strictly positive")
        if self.realtime_factor is not None and self.realtime_factor <= 0:
            raise ValueError("realtime_factor must be strictly positive")
        merged = default_profiles(self.policy)
        if self.profiles:
            merged.update(self.profiles)
        self.profiles = merged

    @property
    def job_classes(self) -> List[JobClass]:
        return list(JobClass)[: self.num_job_classes]


class SimulationContext:
    """Run state shared by every actor of one simulation."""

    def __init__(self, env: simpy.Environment, config: SimulationConfig):
        self.env = env
        self.config = config
        self.queue = BoundedJobQueue(env, config.buffer_capacity)
        self.stats = StatisticsAggregator(config.job_classes, config.num_processors)
        self.started_at = env.now
        self.finished_at: Optional[float] = None
        self.stop_reason: Optional[StopReason] = None
        self.generators_done = False
        self.drained = env.event()
        self.completed_jobs: List[Job] = []
        self._quota = config.total_jobs
        self._ids = count()
        self.issued = 0

    @property
    def quota(self) -> int:
        return self._quota

    def take_quota(self) -> bool:
        """Decrement the countdown if any jobs are left to generate."""
        if self._quota <= 0 or self.stop_reason is not None:
            return False
        self._quota -= 1
        return True

    def restore_quota(self) -> None:
        self._quota += 1

    def new_job(self, profile: JobClassProfile) -> Job:
        self.issued += 1
        return Job(
            job_id=next(self._ids),
            job_class=profile.job_class,
            service_length=profile.service_length,
            generated_at=self.env.now,
        )

    def job_completed(self, job: Job) -> None:
        self.completed_jobs.append(job)
        self.check_drained()

    def check_drained(self) -> None:
        if self.drained.triggered:
            return
        if self.generators_done and len(self.completed_jobs) == self.issued:
            self.drained.succeed(StopReason.SHUTDOWN)

    def stop(self, reason: StopReason) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
        if not self.drained.triggered:
            self.drained.succeed(reason)


# --- Actors ---
class Actor:
    """Common handle on a SimPy process that can be woken or stopped."""

    process: simpy.Process

    def wake(self) -> None:
        """Interrupt the actor without a stop cause (a spurious wake)."""
        if self.process.is_alive and self.process is not self.process.env.active_process:
            self.process.interrupt()

    def stop(self, reason: StopReason) -> None:
        if self.process.is_alive and self.process is not self.process.env.active_process:
            self.process.interrupt(reason)


class JobGenerator(Actor):
    """Producer creating jobs of one class at a fixed cadence."""

    def __init__(self, ctx: SimulationContext, profile: JobClassProfile):
        self.ctx = ctx
        self.env = ctx.env
        self.profile = profile
        self.process = self.env.process(self.run())

    def run(self):
        queue = self.ctx.queue
        while self.ctx.take_quota():
            try:
                permit = yield from acquire_permit(queue.slots_free)
            except simpy.Interrupt:
                # The job was never created.
                self.ctx.restore_quota()
                return
            job = self.ctx.new_job(self.profile)
            queue.enqueue(job, permit)
            logger.debug("t=%.3f generated %s job %d", self.env.now, job.job_class.value, job.job_id)
            try:
                yield from hold(self.env, self.profile.inter_arrival)
            except simpy.Interrupt:
                return


class Processor(Actor):
    """Virtual processor consuming jobs under a scheduling policy.

    The processor loops: claim the head job, optionally pay the affinity
    penalty, run the segment granted by the policy, then either requeue the
    job or complete it and free its slot.
    """

    def __init__(self, ctx: SimulationContext, processor_id: int, policy: SchedulingPolicy):
        self.ctx = ctx
        self.env = ctx.env
        self.processor_id = processor_id
        self.policy = policy
        self.current_job: Optional[Job] = None
        self.process = self.env.process(self.run_loop())

    def run_loop(self):
        queue = self.ctx.queue
        while True:
            try:
                permit = yield from acquire_permit(queue.slots_filled)
            except simpy.Interrupt:
                return
            job = queue.dequeue_head(permit)
            self.current_job = job
            try:
                yield from self.execute(job)
            except simpy.Interrupt as interrupt:
                # Segment is void; hand the job back untouched.
                logger.debug(
                    "t=%.3f processor %d stopped (%s), returning job %d",
                    self.env.now, self.processor_id, interrupt.cause.value, job.job_id,
                )
                queue.requeue(job)
                return
            finally:
                self.current_job = None

    def execute(self, job: Job):
        """Run one segment of `job` and settle it."""
        dispatched_at = self.env.now
        penalty = self.policy.switch_penalty(job, self.processor_id)
        if penalty > 0:
            logger.debug(
                "t=%.3f job %d moved %s -> %d, affinity penalty %.3f",
                self.env.now, job.job_id, job.last_processor_id, self.processor_id, penalty,
            )
            yield from hold(self.env, penalty)
        job.begin_segment(self.processor_id, self.env.now)
        run_time = self.policy.allotment(job)
        yield from hold(self.env, run_time)

        job.segments.append(
            Segment(
                processor_id=self.processor_id,
                dispatched_at=dispatched_at,
                started_at=job.serviced_at,
                duration=run_time,
                penalty=penalty,
            )
        )
        self.ctx.stats.record_segment(self.processor_id, run_time, penalty)
        if run_time < job.remaining_service:
            job.remaining_service -= run_time
            self.ctx.queue.requeue(job)
            logger.debug(
                "t=%.3f processor %d preempted job %d, %.3f left",
                self.env.now, self.processor_id, job.job_id, job.remaining_service,
            )
            return
        job.remaining_service = 0.0
        job.completed_at = self.env.now
        job.state = JobState.COMPLETED
        self.ctx.stats.record_completion(job)
        self.ctx.queue.retire(job)
        logger.debug("t=%.3f processor %d completed job %d", self.env.now, self.processor_id, job.job_id)
        self.ctx.job_completed(job)


# --- Simulation driver ---
class Simulation:
    """Wires generators and processors together and runs them to completion."""

    def __init__(self, config: Optional[SimulationConfig] = None, env: Optional[simpy.Environment] = None):
        self.config = config or SimulationConfig()
        if env is None:
            if self.config.realtime_factor is not None:
                env = simpy.rt.RealtimeEnvironment(factor=self.config.realtime_factor, strict=False)
            else:
                env = simpy.Environment()
        self.env = env
        self.ctx = SimulationContext(env, self.config)
        self.policy = make_policy(
            self.config.policy,
            timeslice=self.config.timeslice,
            affinity=self.config.affinity,
            penalty=self.config.affinity_penalty,
        )
        # Generators start first so the first jobs are queued before any claim.
        self.generators: List[JobGenerator] = [
            JobGenerator(self.ctx, self.config.profiles[job_class])
            for job_class in self.config.job_classes
        ]
        self.processors: List[Processor] = [
            Processor(self.ctx, i, self.policy) for i in range(self.config.num_processors)
        ]
        self._supervisor = env.process(self._supervise())
        if self.config.time_limit is not None:
            env.process(self._watchdog(self.config.time_limit))
        self._summary: Optional[SimulationSummary] = None

    @property
    def queue(self) -> BoundedJobQueue:
        return self.ctx.queue

    @property
    def stats(self) -> StatisticsAggregator:
        return self.ctx.stats

    @property
    def completed_jobs(self) -> List[Job]:
        return list(self.ctx.completed_jobs)

    def run(self) -> SimulationSummary:
        """Block until every generated job has completed (or the run is cancelled)."""
        if self._summary is None:
            logger.info(
                "starting %s simulation: %d processors, %d job classes, %d jobs, buffer %d",
                self.config.policy.value, self.config.num_processors,
                self.config.num_job_classes, self.config.total_jobs, self.config.buffer_capacity,
            )
            self.env.run(until=self._supervisor)
            self._summary = self.summary()
            logger.info(
                "simulation finished at t=%.3f: %d/%d jobs completed",
                self.ctx.finished_at, self._summary.jobs_completed, self._summary.jobs_issued,
            )
        return self._summary

    def cancel(self, reason: StopReason = StopReason.CANCELLED) -> None:
        """Stop every actor promptly, leaving the queue and statistics consistent."""
        logger.info("t=%.3f cancelling simulation (%s)", self.env.now, reason.value)
        self.ctx.stop(reason)
        for actor in [*self.generators, *self.processors]:
            actor.stop(reason)

    @property
    def elapsed(self) -> float:
        end = self.ctx.finished_at if self.ctx.finished_at is not None else self.env.now
        return end - self.ctx.started_at

    def summary(self) -> SimulationSummary:
        return self.stats.summarize(
            self.config.policy,
            self.elapsed,
            throughput_scale=self.config.throughput_scale,
            jobs_issued=self.ctx.issued,
            stop_reason=self.ctx.stop_reason,
        )

    def _supervise(self):
        yield self.env.all_of([g.process for g in self.generators])
        self.ctx.generators_done = True
        self.ctx.check_drained()
        yield self.ctx.drained
        self.ctx.finished_at = self.env.now
        for proc in self.processors:
            proc.stop(StopReason.SHUTDOWN)

    def _watchdog(self, limit: float):
        yield self.env.timeout(limit)
        if not self.ctx.drained.triggered:
            self.cancel(StopReason.TIME_LIMIT)


def start(
    num_processors: int = DEFAULT_NUM_PROCESSORS,
    num_job_classes: int = len(JobClass),
    policy: Union[Policy, str] = Policy.FCFS,
    timeslice: float = DEFAULT_TIMESLICE,
    affinity_enabled: bool = False,
    total_jobs: int = DEFAULT_TOTAL_JOBS,
    buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
    **options: Any,
) -> SimulationSummary:
    """Run one simulation to completion and return its final statistics.

    Extra keyword arguments are passed through to `SimulationConfig`
    (profiles, affinity_penalty, throughput_scale, time_limit, realtime_factor).
    """
    config = SimulationConfig(
        num_processors=num_processors,
        num_job_classes=num_job_classes,
        policy=policy,
        timeslice=timeslice,
        affinity=affinity_enabled,
        total_jobs=total_jobs,
        buffer_capacity=buffer_capacity,
        **options,
    )
    return Simulation(config).run()


def simulate(**params: Any) -> Dict[str, Any]:
    """Run a simulation from a flat parameter dict (see scenario.py).

    Accepts the `SimulationConfig` field names; an optional "name" key is
    ignored so scenario dicts can be passed as they are.
    """
    params = dict(params)
    params.pop("name", None)
    return Simulation(SimulationConfig(**params)).run().as_dict()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    # Example usage: compare both policies on the default workload
    for policy in (Policy.FCFS, Policy.ROUND_ROBIN):
        result = simulate(policy=policy, affinity=policy is Policy.ROUND_ROBIN)
        print(f"Simulation results ({policy.value}):")
        for k, v in result.items():
            print(f"{k}: {v:.4f}" if isinstance(v, float) else f"{k}: {v}")
        print()
