"""
Stratégies par rôle.

Une stratégie répond, pour l'acteur courant, à trois questions :
- quelles lignes d'une liste peut-il voir (transformer_liste, clés_portée) ;
- quelles actions lui sont ouvertes (permissions, vérifier_*) ;
- quels filtres et quelles colonnes lui présenter (métadonnées d'interface).

La fabrique stratégie_pour() choisit la stratégie une seule fois par
requête, à partir du rôle de l'acteur. Les droits d'approbation et de rejet
sont déduits des tables de transition : l'interface et le serveur
s'appuient sur la même frontière.
"""

from __future__ import annotations

import abc
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Optional

from emballages.domain.exceptions import AccèsRefusé
from emballages.domain.model import Acteur, DocumentWorkflow, RéfEntité
from emballages.domain.statuts import WORKFLOWS, Rôle, Statut, TypeDocument


@dataclass(frozen=True)
class Permissions:
    peut_créer: bool = False
    peut_modifier: bool = False
    peut_supprimer: bool = False
    peut_approuver: bool = False
    peut_rejeter: bool = False
    peut_tout_voir: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "canCreate": self.peut_créer,
            "canEdit": self.peut_modifier,
            "canDelete": self.peut_supprimer,
            "canApprove": self.peut_approuver,
            "canReject": self.peut_rejeter,
            "canViewAll": self.peut_tout_voir,
        }


@dataclass(frozen=True)
class Colonne:
    clé: str
    titre: str
    largeur: Optional[str] = None


COLONNES_TRANSFERT = (
    Colonne("référence", "Référence", "15%"),
    Colonne("station_destination_id", "Station demandeuse", "20%"),
    Colonne("station_source_id", "Station source", "20%"),
    Colonne("statut", "Statut", "15%"),
    Colonne("montant_total", "Montant total", "15%"),
    Colonne("créé_le", "Créée le", "15%"),
)

COLONNES_COMMANDE = (
    Colonne("référence", "Référence", "15%"),
    Colonne("station_id", "Station", "20%"),
    Colonne("fournisseur_id", "Fournisseur", "20%"),
    Colonne("statut", "Statut", "15%"),
    Colonne("montant_total", "Montant HT", "15%"),
    Colonne("créé_le", "Créée le", "15%"),
)

COLONNE_ACTIONS = Colonne("actions", "Actions", "10%")


class StratégieRôle(abc.ABC):
    """Interface commune des stratégies de rôle."""

    rôle: Rôle
    # Clés des éléments de liste désignant une partie que l'acteur peut représenter.
    clés_entité: tuple[str, ...] = ()

    def __init__(self, acteur: Acteur):
        self.acteur = acteur

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.acteur.id}>"

    # --- Visibilité ---

    def clés_portée(self) -> Optional[tuple[str, ...]]:
        """Colonnes à filtrer sur l'id de l'entité ; None = aucune restriction."""
        return None

    def concerne(self, élément: Mapping[str, Any]) -> bool:
        clés = self.clés_portée()
        if clés is None:
            return True
        entité_id = self.acteur.entité.id
        return any(élément.get(clé) == entité_id for clé in clés)

    def transformer_liste(self, éléments: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
        return [é for é in éléments if self.concerne(é)]

    def représente(self, entité: RéfEntité) -> bool:
        return self.acteur.entité == entité

    def clés_en_attente(self) -> Optional[tuple[str, ...]]:
        """
        Colonnes désignant l'acteur parmi les demandes en attente de décision.
        None = toutes les demandes, tuple vide = aucune.
        """
        return None

    def site_par_défaut(self) -> Optional[RéfEntité]:
        """Site demandeur retenu quand le corps de la requête n'en désigne pas."""
        return None

    # --- Permissions ---

    @abc.abstractmethod
    def _capacités(self, type_document: TypeDocument) -> Permissions:
        raise NotImplementedError

    def permissions(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> Permissions:
        workflow = WORKFLOWS[type_document]
        capacités = self._capacités(type_document)
        return Permissions(
            peut_créer=capacités.peut_créer,
            peut_modifier=capacités.peut_modifier,
            peut_supprimer=capacités.peut_supprimer,
            peut_approuver=self.rôle in workflow.rôles_pour(Statut.CONFIRMEE),
            peut_rejeter=self.rôle in workflow.rôles_pour(Statut.REJETEE),
            peut_tout_voir=capacités.peut_tout_voir,
        )

    def vérifier_création(self, type_document: TypeDocument, destinataire: RéfEntité) -> None:
        if not self.permissions(type_document).peut_créer:
            raise AccèsRefusé(f"Le rôle {self.rôle.value} ne peut pas créer ce document")

    def vérifier_modification(self, document: DocumentWorkflow) -> None:
        if not self.permissions(document.type_document).peut_modifier:
            raise AccèsRefusé(f"Le rôle {self.rôle.value} ne peut pas modifier ce document")

    def vérifier_suppression(self, document: DocumentWorkflow) -> None:
        if not self.permissions(document.type_document).peut_supprimer:
            raise AccèsRefusé(f"Le rôle {self.rôle.value} ne peut pas supprimer ce document")

    def vérifier_accès_site(self, site: RéfEntité) -> None:
        pass

    def actions_disponibles(self, document: DocumentWorkflow) -> list[Statut]:
        return document.workflow.suivants(document.statut, self.acteur, document)

    # --- Métadonnées d'interface ---

    def filtres_disponibles(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[str]:
        return ["search", "status"]

    def colonnes(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[Colonne]:
        if type_document is TypeDocument.COMMANDE:
            return list(COLONNES_COMMANDE)
        return list(COLONNES_TRANSFERT)

    def description(self, type_document: TypeDocument) -> dict[str, Any]:
        return {
            "role": self.rôle.value,
            "permissions": self.permissions(type_document).to_dict(),
            "filters": self.filtres_disponibles(type_document),
            "columns": [asdict(c) for c in self.colonnes(type_document)],
        }


class StratégieManager(StratégieRôle):
    rôle = Rôle.MANAGER

    def _capacités(self, type_document: TypeDocument) -> Permissions:
        return Permissions(
            peut_créer=True, peut_modifier=True, peut_supprimer=True, peut_tout_voir=True
        )

    def filtres_disponibles(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[str]:
        if type_document is TypeDocument.COMMANDE:
            return ["search", "status", "station", "fournisseur"]
        return ["search", "status", "stationDestination", "stationSource"]

    def colonnes(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[Colonne]:
        return super().colonnes(type_document) + [COLONNE_ACTIONS]


class StratégieGestionnaire(StratégieManager):
    """Comme le Manager, sans suppression."""

    rôle = Rôle.GESTIONNAIRE

    def _capacités(self, type_document: TypeDocument) -> Permissions:
        return Permissions(peut_créer=True, peut_modifier=True, peut_tout_voir=True)


class StratégieStation(StratégieRôle):
    rôle = Rôle.STATION
    clés_entité = ("station_destination_id", "station_source_id", "station_id")

    def clés_portée(self) -> Optional[tuple[str, ...]]:
        return self.clés_entité

    def clés_en_attente(self) -> Optional[tuple[str, ...]]:
        return ("station_source_id",)

    def site_par_défaut(self) -> Optional[RéfEntité]:
        return self.acteur.entité

    def _capacités(self, type_document: TypeDocument) -> Permissions:
        if type_document is TypeDocument.COMMANDE:
            return Permissions(peut_créer=True)
        return Permissions(peut_créer=True, peut_modifier=True, peut_supprimer=True)

    def vérifier_création(self, type_document: TypeDocument, destinataire: RéfEntité) -> None:
        super().vérifier_création(type_document, destinataire)
        if not self.représente(destinataire):
            raise AccèsRefusé("Une station ne peut créer de demande que pour elle-même")

    def vérifier_modification(self, document: DocumentWorkflow) -> None:
        super().vérifier_modification(document)
        if not self.représente(document.destinataire):
            raise AccèsRefusé("Seule la station demandeuse peut modifier ce document")

    def vérifier_suppression(self, document: DocumentWorkflow) -> None:
        super().vérifier_suppression(document)
        if not self.représente(document.destinataire):
            raise AccèsRefusé("Seule la station demandeuse peut supprimer ce document")

    def vérifier_accès_site(self, site: RéfEntité) -> None:
        if not self.représente(site):
            raise AccèsRefusé("Une station ne gère que son propre stock")

    def colonnes(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[Colonne]:
        return [c for c in super().colonnes(type_document) if c.clé != "station_id"]


class StratégieFournisseur(StratégieRôle):
    rôle = Rôle.FOURNISSEUR
    clés_entité = ("fournisseur_id",)

    def clés_portée(self) -> Optional[tuple[str, ...]]:
        return self.clés_entité

    def clés_en_attente(self) -> Optional[tuple[str, ...]]:
        return ()

    def _capacités(self, type_document: TypeDocument) -> Permissions:
        return Permissions()

    def vérifier_accès_site(self, site: RéfEntité) -> None:
        if not self.représente(site):
            raise AccèsRefusé("Un fournisseur ne gère que son propre stock")

    def filtres_disponibles(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[str]:
        return ["search", "status", "station"]

    def colonnes(self, type_document: TypeDocument = TypeDocument.TRANSFERT) -> list[Colonne]:
        return [c for c in super().colonnes(type_document) if c.clé != "fournisseur_id"]


STRATÉGIES: dict[Rôle, type[StratégieRôle]] = {
    Rôle.MANAGER: StratégieManager,
    Rôle.GESTIONNAIRE: StratégieGestionnaire,
    Rôle.STATION: StratégieStation,
    Rôle.FOURNISSEUR: StratégieFournisseur,
}


def stratégie_pour(acteur: Acteur) -> StratégieRôle:
    """Fabrique : la stratégie correspondant au rôle de l'acteur."""
    return STRATÉGIES[acteur.rôle](acteur)
