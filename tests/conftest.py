import time

import pytest

from veranode.config import default_config
from veranode.vera_engine import VeraEngine, set_engine
from veranode.vera_runtime.validator import RumorValidator, ValidationResult

TEST_SECRET = "test-secret-for-veranode-suite-0123456789"
TEST_ADMIN_KEY = "test-admin-key"
HOUR = 60 * 60
DAY = 24 * HOUR


class FakeClock:
    """Engine clock that only moves when a test says so."""

    def __init__(self, start=None):
        self.t = float(start if start is not None else time.time())

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += float(seconds)
        return self.t


class StubValidator(RumorValidator):
    """Accepts everything except content mentioning 'not a rumor'."""

    def __init__(self):
        self.calls = []

    def validate(self, content):
        self.calls.append(content)
        if "not a rumor" in content.lower():
            return ValidationResult(False, False, "content is an opinion, not a claim")
        return ValidationResult(True, True, "looks like a claim", None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def validator():
    return StubValidator()


@pytest.fixture
def make_engine(tmp_path, clock, validator):
    built = []

    def _make(cfg=None, data_dir=None):
        eng = VeraEngine(
            str(data_dir or tmp_path / "data"),
            cfg or default_config(),
            validator=validator,
            secret=TEST_SECRET,
            admin_key=TEST_ADMIN_KEY,
            clock=clock,
            auto_loop=False,
        )
        built.append(eng)
        return eng

    yield _make
    for eng in built:
        eng.stop_loop()
    set_engine(None)


@pytest.fixture
def engine(make_engine):
    return make_engine()


def signup(engine, area="SEECS", points=0.0):
    """Register + login; returns (secret_key, session)."""
    key, profile = engine.register(area)
    profile["points"] = float(points)
    out = engine.login(key)
    return key, engine.session_for(out["token"])


def post(engine, session, area="SEECS", content="The library closes early on Friday this week", hours=2):
    return engine.post_rumor(session.profile_id, content, area, engine.now() + hours * HOUR)
