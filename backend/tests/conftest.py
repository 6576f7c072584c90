import pytest

from humangate.core.settings import Settings
from humangate.main import create_app


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def solve(glyphs) -> str:
    """Read the answer back out of the display glyphs, as a human would."""
    return "".join(g.char if hasattr(g, "char") else g["char"] for g in glyphs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_app(clock):
    def _make(sessions=None, **overrides):
        app = create_app(Settings(**overrides), sessions=sessions, clock=clock)

        @app.get("/dashboard")
        def dashboard():
            return {"page": "dashboard"}

        return app

    return _make
