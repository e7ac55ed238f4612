"""
Pattern Unit of Work.

Le Unit of Work (UoW) gère la notion de transaction atomique.
Il coordonne l'écriture en base de données et la collecte
des événements émis par les agrégats au cours de la transaction.

Le UoW agit comme un context manager :
    with uow:
        # ... opérations sur les repositories ...
        uow.commit()

Une transition de statut et les mouvements de stock qu'elle induit
partagent la même transaction.
"""

from __future__ import annotations

import abc
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from emballages import config
from emballages.adapters import repository
from emballages.domain import events, model

DEFAULT_SESSION_FACTORY = sessionmaker(
    bind=create_engine(
        config.get_database_uri(),
        isolation_level="SERIALIZABLE",
    )
)


class AbstractUnitOfWork(abc.ABC):
    """
    Interface abstraite du Unit of Work.

    Fournit les repositories `demandes`, `commandes`, `stocks` et
    `référentiel`, et gère commit/rollback. Le rollback est automatique
    si commit() n'est pas appelé (grâce au __exit__ du context manager).
    """

    demandes: repository.AbstractRepository[model.DemandeTransfert]
    commandes: repository.AbstractRepository[model.Commande]
    stocks: repository.AbstractStockRepository
    référentiel: repository.AbstractRéférentiel

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args: object) -> None:
        self.rollback()

    def commit(self) -> None:
        self._commit()

    def collect_new_events(self) -> Iterator[events.Event]:
        """
        Collecte tous les événements émis par les agrégats vus
        pendant cette transaction (documents et stocks), en vidant
        leur liste d'événements pour les passer au message bus.
        """
        for repo in (self.demandes, self.commandes, self.stocks):
            for agrégat in repo.seen:
                while agrégat.événements:
                    yield agrégat.événements.pop(0)

    @abc.abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    Implémentation concrète du UoW avec SQLAlchemy.

    Crée une session à l'entrée du context manager,
    la ferme à la sortie. Rollback automatique si pas de commit.
    """

    def __init__(self, session_factory: sessionmaker = DEFAULT_SESSION_FACTORY):
        self.session_factory = session_factory

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        self.session: Session = self.session_factory()
        self.demandes = repository.SqlAlchemyRepository(self.session, model.DemandeTransfert)
        self.commandes = repository.SqlAlchemyRepository(self.session, model.Commande)
        self.stocks = repository.SqlAlchemyStockRepository(self.session)
        self.référentiel = repository.SqlAlchemyRéférentiel(self.session)
        return super().__enter__()

    def __exit__(self, *args: object) -> None:
        super().__exit__(*args)
        self.session.close()

    def _commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
