from blog.reliability import CircuitBreaker


def test_circuit_opens_after_threshold():
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout_s=60)

    assert breaker.record_failure() is False
    assert breaker.allow() is True
    assert breaker.record_failure() is True
    assert breaker.allow() is False
    assert breaker.state == "open"


def test_circuit_half_opens_after_reset_timeout():
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout_s=0)
    breaker.record_failure()

    assert breaker.allow() is True
    assert breaker.state == "half_open"

    breaker.record_success()
    assert breaker.state == "closed"


def test_failure_while_half_open_reopens():
    breaker = CircuitBreaker(failure_threshold=3, reset_timeout_s=0)
    for _ in range(3):
        breaker.record_failure()
    breaker.allow()

    assert breaker.record_failure() is True
    assert breaker.state == "open"


def test_half_open_allows_a_single_trial_call():
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout_s=0)
    breaker.record_failure()

    assert breaker.allow() is True
    assert breaker.allow() is False
    assert breaker.state == "half_open"

    breaker.record_success()
    assert breaker.allow() is True
    assert breaker.allow() is True
