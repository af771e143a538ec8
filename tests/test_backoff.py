from symphony.backoff import JITTER_RATIO, calculate_backoff
from symphony.models import BackoffStrategy, RetryPolicy


def _policy(strategy: BackoffStrategy, initial: int = 1000,
            maximum: int = 30000) -> RetryPolicy:
    policy = RetryPolicy.default()
    policy.backoff_strategy = strategy
    policy.initial_delay_ms = initial
    policy.max_delay_ms = maximum
    return policy


def test_fixed_always_returns_initial_delay():
    policy = _policy(BackoffStrategy.FIXED, initial=750)
    assert [calculate_backoff(n, policy) for n in range(5)] == [750] * 5


def test_exponential_doubles_until_capped():
    policy = _policy(BackoffStrategy.EXPONENTIAL, initial=1000, maximum=5000)
    assert [calculate_backoff(n, policy) for n in range(5)] == [
        1000, 2000, 4000, 5000, 5000]


def test_jitter_stays_within_ratio_and_never_exceeds_max():
    policy = _policy(BackoffStrategy.EXPONENTIAL_JITTER, initial=1000,
                     maximum=8000)
    for attempt in range(6):
        base = min(1000 * 2 ** attempt, 8000)
        for _ in range(200):
            delay = calculate_backoff(attempt, policy)
            assert delay <= 8000
            assert abs(delay - base) <= base * JITTER_RATIO + 1


def test_jitter_uses_random_source(monkeypatch):
    policy = _policy(BackoffStrategy.EXPONENTIAL_JITTER, initial=1000)
    monkeypatch.setattr("symphony.backoff.random.random", lambda: 0.0)
    assert calculate_backoff(0, policy) == 850
    monkeypatch.setattr("symphony.backoff.random.random", lambda: 0.5)
    assert calculate_backoff(1, policy) == 2000
