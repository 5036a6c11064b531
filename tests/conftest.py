import math
import os
import sys
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.jobmatch...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before backend.jobmatch.config is imported anywhere.
os.environ["DISABLE_DOTENV"] = "1"
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
# Tests never call a real embeddings provider even if the developer machine has keys set.
os.environ["EMBEDDINGS_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""


class FakeGateway:
    """
    Deterministic stand-in for EmbeddingGateway.

    `rules` maps a lowercase keyword to the vector returned for any text containing it;
    other text gets `default`. Every call is recorded in `calls`.
    """

    def __init__(self, rules=None, default=None, model: str = "fake-embed"):
        self.rules = dict(rules or {})
        self.default = list(default or [1.0, 0.0])
        self.model = model
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def embed(self, text: str):
        from backend.jobmatch.utils.error_handlers import ProviderError

        self.calls.append(text)
        t = text.lower()
        for word in self.fail_on:
            if word in t:
                raise ProviderError(status_code=503, body="upstream unavailable")
        for word, vec in self.rules.items():
            if word in t:
                return list(vec), None
        return list(self.default), None


def vec_at(sim: float) -> list[float]:
    """Unit vector whose cosine against [1, 0] is `sim`."""
    return [sim, math.sqrt(max(0.0, 1.0 - sim * sim))]


@pytest.fixture()
def engine(tmp_path: Path):
    from backend.jobmatch.database import init_db, make_engine

    eng = make_engine(f"sqlite+pysqlite:///{tmp_path / 'test.sqlite3'}")
    init_db(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    """Direct SQLAlchemy session bound to the temporary SQLite DB."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def make_gateway():
    return FakeGateway


@pytest.fixture()
def unit_vec():
    return vec_at
