import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from database import Base, create_db_engine, get_db, make_sessionmaker
from main import app


@pytest.fixture()
def client():
    # One shared connection so every request sees the same in-memory database.
    engine = create_db_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    TestingSession = make_sessionmaker(engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
