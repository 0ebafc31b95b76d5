"""
Configuration partagée pour les tests.

Le mapping ORM est démarré une seule fois pour toute la session de tests.
Cela permet aux tests d'intégration et e2e d'utiliser SQLAlchemy
sans interférer avec les tests unitaires.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ticketing.adapters import orm


@pytest.fixture(scope="session", autouse=True)
def mappers():
    """Démarre le mapping ORM une fois pour toute la session."""
    orm.start_mappers()


@pytest.fixture
def sqlite_session_factory():
    """Base SQLite en mémoire, tables créées."""
    engine = create_engine("sqlite:///:memory:")
    orm.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Base SQLite sur fichier, partagée entre threads.

    Une base en mémoire est propre à une connexion : il faut un
    fichier pour que plusieurs threads voient les mêmes lignes.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ticketing.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    orm.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()
