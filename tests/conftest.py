from datetime import datetime, timezone

import pytest

from marketkit.sessions.engine import SessionAnalyticsEngine


class FakeClock:
    """Manually advanced clock, usable as a float or datetime time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    counter = iter(range(1, 10_000))
    return SessionAnalyticsEngine(
        clock=clock.datetime,
        id_factory=lambda ts: f"msg_{next(counter)}",
    )


@pytest.fixture
def session(engine):
    return engine.create_session("s1", user_id="u1")


@pytest.fixture
def transcript_yaml(tmp_path):
    """Write a short support transcript and return its path."""
    content = """
session_id: demo
user_id: u-1
messages:
  - role: user
    content: "What is the price of the blue widget?"
  - role: assistant
    content: "The blue widget costs $20."
    metadata: {tokens: 12, response_time_ms: 1000}
    rating: 4
  - role: user
    content: "Thanks, that was helpful"
close: resolved
"""
    path = tmp_path / "transcript.yaml"
    path.write_text(content)
    return path
