"""
Configuration partagée pour les tests.

Le mapping ORM est démarré une seule fois pour toute la session de tests.
Cela permet aux tests d'intégration et e2e d'utiliser SQLAlchemy
sans interférer avec les tests unitaires.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from emballages.adapters import orm
from emballages.domain import model


@pytest.fixture(scope="session", autouse=True)
def mappers():
    """Démarre le mapping ORM une fois pour toute la session."""
    orm.start_mappers()


@pytest.fixture
def sqlite_session_factory():
    """Base SQLite en mémoire avec les tables et un petit référentiel."""
    engine = create_engine("sqlite:///:memory:")
    orm.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine)
    with session_factory() as session:
        session.add_all([
            model.Station("A", "Station A"),
            model.Station("B", "Station B"),
            model.Station("C", "Station C"),
            model.Fournisseur("F", "Fournisseur F"),
        ])
        session.commit()
    yield session_factory
    engine.dispose()


@pytest.fixture
def session(sqlite_session_factory):
    with sqlite_session_factory() as session:
        yield session
