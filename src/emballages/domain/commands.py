"""
Commands du domaine.

Les commands représentent des intentions adressées au système. Chacune
porte l'acteur qui la demande : c'est lui que le workflow et les
stratégies de rôle contrôlent.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from emballages.domain.model import Acteur, RéfEntité
from emballages.domain.statuts import Statut


class Command:
    """Classe de base pour toutes les commands."""
    pass


@dataclass(frozen=True)
class ArticleDemandé:
    """Ligne saisie à la création d'un document."""

    article_id: str
    quantité: int
    prix_unitaire: Decimal


@dataclass(frozen=True)
class CréerDemandeTransfert(Command):
    station_destination_id: str
    station_source_id: str
    articles: tuple[ArticleDemandé, ...]
    acteur: Acteur


@dataclass(frozen=True)
class ModifierDemandeTransfert(Command):
    """Remplace les lignes d'une demande encore enregistrée."""

    référence: str
    articles: tuple[ArticleDemandé, ...]
    acteur: Acteur


@dataclass(frozen=True)
class SupprimerDemandeTransfert(Command):
    référence: str
    acteur: Acteur


@dataclass(frozen=True)
class ChangerStatutDemande(Command):
    """
    Demande de transition d'une demande de transfert.

    `quantités` associe un article_id à une quantité : accordée pour
    Confirmée, livrée pour Réceptionnée. `document_url` désigne le bon de
    livraison à l'expédition, puis le bon émargé à la réception.
    """

    référence: str
    statut: Statut
    acteur: Acteur
    motif: Optional[str] = None
    quantités: Optional[dict[str, int]] = None
    document_url: Optional[str] = None
    transporteur: Optional[str] = None
    numéro_suivi: Optional[str] = None
    non_conformités: Optional[str] = None


@dataclass(frozen=True)
class CréerCommande(Command):
    station_id: str
    fournisseur_id: str
    articles: tuple[ArticleDemandé, ...]
    acteur: Acteur


@dataclass(frozen=True)
class ChangerStatutCommande(Command):
    référence: str
    statut: Statut
    acteur: Acteur
    motif: Optional[str] = None
    quantités: Optional[dict[str, int]] = None
    document_url: Optional[str] = None
    transporteur: Optional[str] = None
    numéro_suivi: Optional[str] = None
    non_conformités: Optional[str] = None


@dataclass(frozen=True)
class CréerStock(Command):
    site: RéfEntité
    article_id: str
    quantité: int
    acteur: Acteur


@dataclass(frozen=True)
class AjusterStock(Command):
    """Inventaire : fixe la quantité d'un stock existant."""

    site: RéfEntité
    article_id: str
    quantité: int
    acteur: Acteur
