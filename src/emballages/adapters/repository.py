"""
Pattern Repository.

Le repository fournit une abstraction sur la couche de persistance.
Il expose une interface de type collection (add, get) qui masque
les détails de l'accès aux données.

Trois familles de repositories :
- documents (demandes de transfert, commandes), un agrégat par référence ;
- stocks, un agrégat par (site, article) ;
- référentiel (stations, fournisseurs), en lecture pour l'éligibilité.

Les noms de méthodes du pattern (add, get) restent en anglais
car ce sont des conventions reconnues. Les méthodes spécifiques
au domaine (supprimer, dernière_référence) sont en français.
"""

from __future__ import annotations

import abc
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from emballages.domain import model
from emballages.domain.exceptions import Conflit

D = TypeVar("D", bound=model.DocumentWorkflow)


class AbstractRepository(abc.ABC, Generic[D]):
    """
    Interface abstraite d'un repository de documents.

    Le pattern Template Method est utilisé : les méthodes publiques
    (add, get) gèrent le tracking via `seen`, puis délèguent
    aux méthodes abstraites préfixées _ que les sous-classes implémentent.
    """

    seen: set[D]

    def __init__(self) -> None:
        # `seen` trace tous les agrégats consultés pendant la transaction,
        # ce qui permet au Unit of Work de collecter leurs événements.
        self.seen: set[D] = set()

    def add(self, document: D) -> None:
        self._add(document)
        self.seen.add(document)

    def get(self, référence: str) -> D | None:
        """Récupère un document par sa référence et le marque comme vu."""
        document = self._get(référence)
        if document:
            self.seen.add(document)
        return document

    def supprimer(self, document: D) -> None:
        self._supprimer(document)
        self.seen.discard(document)

    def dernière_référence(self, début: str) -> str | None:
        """Plus grande référence commençant par `début` (ex. « TRF-2024- »)."""
        return self._dernière_référence(début)

    @abc.abstractmethod
    def _add(self, document: D) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, référence: str) -> D | None:
        raise NotImplementedError

    @abc.abstractmethod
    def _supprimer(self, document: D) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _dernière_référence(self, début: str) -> str | None:
        raise NotImplementedError


class SqlAlchemyRepository(AbstractRepository[D]):
    """Implémentation concrète avec SQLAlchemy, pour une classe de document."""

    def __init__(self, session: Session, classe: type[D]):
        super().__init__()
        self.session = session
        self.classe = classe

    def _add(self, document: D) -> None:
        self.session.add(document)

    def _get(self, référence: str) -> D | None:
        return (
            self.session.query(self.classe)
            .filter_by(référence=référence)
            .first()
        )

    def _supprimer(self, document: D) -> None:
        self.session.delete(document)

    def _dernière_référence(self, début: str) -> str | None:
        colonne = self.classe.référence
        return (
            self.session.query(colonne)
            .filter(colonne.startswith(début, autoescape=True))
            .order_by(colonne.desc())
            .limit(1)
            .scalar()
        )


class AbstractStockRepository(abc.ABC):
    seen: set[model.Stock]

    def __init__(self) -> None:
        self.seen: set[model.Stock] = set()

    def add(self, stock: model.Stock) -> None:
        """Ajoute un stock ; lève Conflit si le couple (site, article) existe déjà."""
        if self._get(stock.site, stock.article_id) is not None:
            raise Conflit(
                f"Un stock existe déjà pour l'article {stock.article_id}"
                f" sur le site {stock.site_id}"
            )
        self._add(stock)
        self.seen.add(stock)

    def get(self, site: model.RéfEntité, article_id: str) -> model.Stock | None:
        stock = self._get(site, article_id)
        if stock:
            self.seen.add(stock)
        return stock

    @abc.abstractmethod
    def _add(self, stock: model.Stock) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, site: model.RéfEntité, article_id: str) -> model.Stock | None:
        raise NotImplementedError


class SqlAlchemyStockRepository(AbstractStockRepository):
    def __init__(self, session: Session):
        super().__init__()
        self.session = session

    def _add(self, stock: model.Stock) -> None:
        self.session.add(stock)

    def _get(self, site: model.RéfEntité, article_id: str) -> model.Stock | None:
        return (
            self.session.query(model.Stock)
            .filter_by(type_site=site.type, site_id=site.id, article_id=article_id)
            .first()
        )


class AbstractRéférentiel(abc.ABC):
    """Stations et fournisseurs connus du système."""

    @abc.abstractmethod
    def station(self, id: str) -> model.Station | None:
        raise NotImplementedError

    @abc.abstractmethod
    def fournisseur(self, id: str) -> model.Fournisseur | None:
        raise NotImplementedError

    @abc.abstractmethod
    def ajouter(self, entité: model.Station | model.Fournisseur) -> None:
        raise NotImplementedError


class SqlAlchemyRéférentiel(AbstractRéférentiel):
    def __init__(self, session: Session):
        self.session = session

    def station(self, id: str) -> model.Station | None:
        return self.session.get(model.Station, id)

    def fournisseur(self, id: str) -> model.Fournisseur | None:
        return self.session.get(model.Fournisseur, id)

    def ajouter(self, entité: model.Station | model.Fournisseur) -> None:
        self.session.add(entité)
