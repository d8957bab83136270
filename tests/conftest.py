"""
Global pytest configuration and fixtures for callguard tests.
"""
import pytest
import structlog


class FakeClock:
    """Controllable monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Backoff timer that records delays and advances a fake clock instead of waiting."""

    def __init__(self, clock: FakeClock = None):
        self.clock = clock
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class FlakyOperation:
    """Async operation failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, result="ok", error_factory=None):
        self.failures = failures
        self.result = result
        self.error_factory = error_factory or (lambda n: ConnectionError(f"failure {n}"))
        self.calls = 0
        self.raised = []

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            error = self.error_factory(self.calls)
            self.raised.append(error)
            raise error
        return self.result


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fake clock starting at an arbitrary non-zero time."""
    return FakeClock()


@pytest.fixture
def recording_sleep(fake_clock: FakeClock) -> RecordingSleep:
    """Sleep that advances the fake clock."""
    return RecordingSleep(fake_clock)


@pytest.fixture
def flaky():
    """Factory for operations failing a given number of times."""
    return FlakyOperation


@pytest.fixture(autouse=True)
def reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
