from models.domain import BreakerState
from recommender.circuit_breaker import CircuitBreaker


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_opens_after_three_consecutive_failures():
    clock = Clock()
    b = CircuitBreaker(failure_threshold=3, cooldown_s=300, clock=clock)
    for _ in range(2):
        assert b.allow_request()
        b.record_failure()
    assert b.state == BreakerState.CLOSED

    b.record_failure()
    snap = b.snapshot()
    assert snap.state == BreakerState.OPEN
    assert snap.consecutive_failures == 3
    assert snap.next_retry_at == 1300.0
    assert not b.allow_request()


def test_half_open_success_closes_and_resets_counter():
    clock = Clock()
    b = CircuitBreaker(clock=clock)
    for _ in range(3):
        b.record_failure()

    clock.now += 299
    assert not b.allow_request()

    clock.now += 1
    assert b.allow_request()
    assert b.state == BreakerState.HALF_OPEN
    # only one probe while half-open
    assert not b.allow_request()

    b.record_success()
    snap = b.snapshot()
    assert snap.state == BreakerState.CLOSED
    assert snap.consecutive_failures == 0
    assert b.allow_request()


def test_half_open_failure_reopens_with_fresh_cooldown():
    clock = Clock()
    b = CircuitBreaker(clock=clock)
    for _ in range(3):
        b.record_failure()
    clock.now += 300
    assert b.allow_request()

    b.record_failure()
    snap = b.snapshot()
    assert snap.state == BreakerState.OPEN
    assert snap.next_retry_at == clock.now + 300
    assert not b.allow_request()


def test_success_resets_failure_streak():
    b = CircuitBreaker(clock=Clock())
    b.record_failure()
    b.record_failure()
    b.record_success()
    b.record_failure()
    assert b.state == BreakerState.CLOSED
    assert b.snapshot().consecutive_failures == 1


def test_reset():
    b = CircuitBreaker(clock=Clock())
    for _ in range(3):
        b.record_failure()
    b.reset()
    assert b.snapshot().to_dict() == {
        "state": "CLOSED",
        "consecutive_failures": 0,
        "last_failure_at": None,
        "next_retry_at": None,
    }


def test_released_half_open_probe_lets_the_next_caller_probe():
    clock = Clock()
    b = CircuitBreaker(clock=clock)
    for _ in range(3):
        b.record_failure()
    clock.now += 300
    assert b.allow_request()
    assert not b.allow_request()

    b.release_probe()
    assert b.state == BreakerState.OPEN
    assert b.snapshot().consecutive_failures == 3
    assert b.allow_request()
    assert b.state == BreakerState.HALF_OPEN


def test_release_probe_is_a_no_op_when_closed():
    b = CircuitBreaker(clock=Clock())
    b.release_probe()
    assert b.state == BreakerState.CLOSED
    assert b.allow_request()
