"""
Events du domaine.

Faits passés émis par les agrégats pendant une transaction, puis
distribués par le message bus une fois la command traitée.
"""

from dataclasses import dataclass
from typing import Optional


class Event:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class StatutModifié(Event):
    """Un document a changé de statut."""

    type_document: str
    référence: str
    ancien_statut: str
    nouveau_statut: str
    par_acteur_id: str


@dataclass(frozen=True)
class DocumentRejeté(Event):
    type_document: str
    référence: str
    motif: str
    créé_par: Optional[str]


@dataclass(frozen=True)
class StockNégatif(Event):
    """Un mouvement a fait passer un stock sous zéro."""

    type_site: str
    site_id: str
    article_id: str
    quantité: int
