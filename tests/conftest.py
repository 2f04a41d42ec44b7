import pytest
from fastapi.testclient import TestClient

from backoffice.database import create_database_engine, create_session_factory, init_db
from backoffice.main import create_app


def make_movement(**overrides) -> dict:
    movement = {
        "fecha": "2024-01-10",
        "turno": "AM",
        "movement_type": "Entrada",
        "tipo_producto": "Lamina",
        "cantidad": 100,
        "ancho": 1.2,
        "calibre": 22,
        "peso": None,
    }
    movement.update(overrides)
    return movement


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def engine(database_url):
    engine = create_database_engine(database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(database_url):
    with TestClient(create_app(database_url)) as client:
        yield client
