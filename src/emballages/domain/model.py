"""
Modèle de domaine des flux d'emballages.

Deux agrégats partagent le même cycle de vie :
- DemandeTransfert : une station demande des articles à une autre station ;
- Commande : une station commande des articles à un fournisseur.

Chacun possède ses lignes (Ligne) et son historique de statuts. Le
montant total est toujours dérivé des lignes. Le Stock d'un site (station
ou fournisseur) pour un article est une entité à part, mise à jour par la
service layer lors des réceptions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import ClassVar, Iterable, Mapping, Optional, Union

from emballages.domain import events
from emballages.domain.exceptions import (
    DonnéesInvalides,
    QuantitéIncohérente,
    TransitionInvalide,
)
from emballages.domain.statuts import (
    WORKFLOW_COMMANDE,
    WORKFLOW_TRANSFERT,
    Rôle,
    Statut,
    TypeDocument,
    Workflow,
)

CENTIME = Decimal("0.01")


def maintenant() -> datetime:
    return datetime.now(timezone.utc)


def _entier(valeur: object, nom: str) -> int:
    if isinstance(valeur, bool) or not isinstance(valeur, int):
        raise DonnéesInvalides(f"{nom} doit être un entier : {valeur!r}")
    return valeur


# --- Références d'entités (union étiquetée) ---


class TypeEntité(str, enum.Enum):
    STATION = "Station"
    FOURNISSEUR = "Fournisseur"


@dataclass(frozen=True)
class RéfStation:
    id: str
    type: ClassVar[TypeEntité] = TypeEntité.STATION


@dataclass(frozen=True)
class RéfFournisseur:
    id: str
    type: ClassVar[TypeEntité] = TypeEntité.FOURNISSEUR


RéfEntité = Union[RéfStation, RéfFournisseur]


def réf_entité(type_entité: str, id_entité: object) -> RéfEntité:
    """Construit une référence typée à partir d'une paire (type, id) non typée."""
    try:
        type_ = TypeEntité(type_entité)
    except ValueError:
        raise DonnéesInvalides(f"Type d'entité inconnu : {type_entité}") from None
    if id_entité is None or str(id_entité) == "":
        raise DonnéesInvalides("Identifiant d'entité manquant")
    if type_ is TypeEntité.STATION:
        return RéfStation(str(id_entité))
    return RéfFournisseur(str(id_entité))


@dataclass(frozen=True)
class Acteur:
    """
    Utilisateur authentifié qui effectue une action.

    Un acteur Station est rattaché à une RéfStation, un acteur Fournisseur
    à une RéfFournisseur ; Manager et Gestionnaire n'ont pas d'entité.
    """

    id: str
    rôle: Rôle
    entité: Optional[RéfEntité] = None

    def __post_init__(self) -> None:
        attendu = {Rôle.STATION: RéfStation, Rôle.FOURNISSEUR: RéfFournisseur}.get(self.rôle)
        if attendu is None:
            if self.entité is not None:
                raise DonnéesInvalides(
                    f"Un acteur {self.rôle.value} n'est rattaché à aucune entité"
                )
        elif not isinstance(self.entité, attendu):
            raise DonnéesInvalides(
                f"Un acteur {self.rôle.value} doit être rattaché à une entité {attendu.type.value}"
            )


# --- Référentiel ---


class Station:
    def __init__(self, id: str, nom: str, actif: bool = True):
        self.id = id
        self.nom = nom
        self.actif = actif

    def __repr__(self) -> str:
        return f"<Station {self.id}>"


class Fournisseur:
    def __init__(self, id: str, nom: str, actif: bool = True):
        self.id = id
        self.nom = nom
        self.actif = actif

    def __repr__(self) -> str:
        return f"<Fournisseur {self.id}>"


# --- Lignes et historique ---


class Ligne:
    """
    Ligne d'un document : un article, ses quantités et son prix unitaire.

    Invariant : 0 <= livrée <= accordée <= demandée, une quantité accordée
    absente valant la quantité demandée.
    """

    def __init__(
        self,
        article_id: str,
        quantité_demandée: int,
        prix_unitaire: Decimal | int | float | str,
        quantité_accordée: Optional[int] = None,
        quantité_livrée: Optional[int] = None,
    ):
        if _entier(quantité_demandée, "La quantité demandée") <= 0:
            raise QuantitéIncohérente(
                f"La quantité demandée doit être positive pour l'article {article_id}"
            )
        try:
            prix = Decimal(str(prix_unitaire))
        except InvalidOperation:
            raise DonnéesInvalides(f"Prix unitaire invalide : {prix_unitaire!r}") from None
        if not prix.is_finite():
            raise DonnéesInvalides(f"Prix unitaire invalide : {prix_unitaire!r}")
        if prix < 0:
            raise DonnéesInvalides(f"Le prix unitaire de l'article {article_id} est négatif")
        self.article_id = article_id
        self.quantité_demandée = quantité_demandée
        self.prix_unitaire = prix
        self.quantité_accordée: Optional[int] = None
        self.quantité_livrée: Optional[int] = None
        if quantité_accordée is not None:
            self.accorder(quantité_accordée)
        if quantité_livrée is not None:
            self.livrer(quantité_livrée)

    def __repr__(self) -> str:
        return f"<Ligne {self.article_id} x{self.quantité_demandée}>"

    @property
    def quantité_facturable(self) -> int:
        """Quantité valorisée : accordée si renseignée, sinon demandée."""
        if self.quantité_accordée is not None:
            return self.quantité_accordée
        return self.quantité_demandée

    @property
    def montant(self) -> Decimal:
        return self.prix_unitaire * self.quantité_facturable

    def contrôler_accord(self, quantité: int) -> None:
        _entier(quantité, "La quantité accordée")
        if not 0 <= quantité <= self.quantité_demandée:
            raise QuantitéIncohérente(
                f"Quantité accordée {quantité} hors de [0, {self.quantité_demandée}]"
                f" pour l'article {self.article_id}"
            )
        if self.quantité_livrée is not None and self.quantité_livrée > quantité:
            raise QuantitéIncohérente(
                f"La quantité accordée ne peut être inférieure à la quantité livrée"
                f" pour l'article {self.article_id}"
            )

    def accorder(self, quantité: int) -> None:
        self.contrôler_accord(quantité)
        self.quantité_accordée = quantité

    def contrôler_livraison(self, quantité: int) -> None:
        _entier(quantité, "La quantité livrée")
        plafond = self.quantité_facturable
        if not 0 <= quantité <= plafond:
            raise QuantitéIncohérente(
                f"Quantité livrée {quantité} hors de [0, {plafond}]"
                f" pour l'article {self.article_id}"
            )

    def livrer(self, quantité: int) -> None:
        self.contrôler_livraison(quantité)
        self.quantité_livrée = quantité


@dataclass
class ÉtapeHistorique:
    statut: Statut
    date: datetime
    par_acteur_id: str


# --- Agrégats ---


class DocumentWorkflow:
    """
    Base commune des agrégats soumis au workflow.

    Le document ne décide pas si une transition est légale (c'est le rôle
    du Workflow) : il applique la transition et ses effets sur lui-même,
    puis émet les events correspondants.
    """

    type_document: ClassVar[TypeDocument]
    workflow: ClassVar[Workflow]
    préfixe: ClassVar[str]
    # Le bon de livraison émargé conditionne la réception.
    exige_bon_émargé: ClassVar[bool] = False

    def __init__(
        self,
        référence: str,
        lignes: Iterable[Ligne],
        créé_par: str,
        numéro_version: int = 0,
    ):
        lignes = list(lignes)
        self._valider_lignes(lignes)
        self.référence = référence
        self.statut = self.workflow.initial
        self.lignes = lignes
        self.créé_par = créé_par
        self.créé_le = maintenant()
        self.motif_rejet: Optional[str] = None
        self.bon_livraison_url: Optional[str] = None
        self.date_expédition: Optional[datetime] = None
        self.transporteur: Optional[str] = None
        self.numéro_suivi: Optional[str] = None
        self.bon_livraison_émargé_url: Optional[str] = None
        self.date_réception: Optional[datetime] = None
        self.non_conformités: Optional[str] = None
        self.historique = [ÉtapeHistorique(self.statut, self.créé_le, créé_par)]
        self.numéro_version = numéro_version
        self.montant_total = Decimal("0.00")
        self.événements: list[events.Event] = []
        self.recalculer_total()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.référence}>"

    @staticmethod
    def _valider_lignes(lignes: list[Ligne]) -> None:
        if not lignes:
            raise DonnéesInvalides("Au moins un article est requis")
        articles = [ligne.article_id for ligne in lignes]
        if len(set(articles)) != len(articles):
            raise DonnéesInvalides("Un article ne peut figurer qu'une seule fois")

    @property
    def expéditeur(self) -> RéfEntité:
        raise NotImplementedError

    @property
    def destinataire(self) -> RéfEntité:
        raise NotImplementedError

    @property
    def parties(self) -> tuple[RéfEntité, ...]:
        return (self.destinataire, self.expéditeur)

    def ligne(self, article_id: str) -> Ligne:
        for ligne in self.lignes:
            if ligne.article_id == article_id:
                return ligne
        raise DonnéesInvalides(f"Article {article_id} absent du document {self.référence}")

    def recalculer_total(self) -> Decimal:
        total = sum((ligne.montant for ligne in self.lignes), Decimal("0"))
        self.montant_total = total.quantize(CENTIME)
        return self.montant_total

    def vérifier_modifiable(self) -> None:
        if self.statut != self.workflow.initial:
            raise TransitionInvalide(
                f"Seuls les documents au statut « {self.workflow.initial.value} »"
                f" peuvent être modifiés ou supprimés"
            )

    def remplacer_lignes(self, lignes: Iterable[Ligne]) -> None:
        self.vérifier_modifiable()
        lignes = list(lignes)
        self._valider_lignes(lignes)
        self.lignes = lignes
        self.recalculer_total()
        self.numéro_version += 1

    def appliquer(
        self,
        cible: Statut,
        acteur: Acteur,
        motif: Optional[str] = None,
        quantités: Optional[Mapping[str, int]] = None,
        document_url: Optional[str] = None,
        transporteur: Optional[str] = None,
        numéro_suivi: Optional[str] = None,
        non_conformités: Optional[str] = None,
    ) -> None:
        """
        Applique une transition déjà validée par le Workflow.

        Les données propres au statut cible sont contrôlées avant toute
        mutation : une erreur laisse le document intact.
        """
        ancien = self.statut
        quantités = dict(quantités or {})
        date = maintenant()

        if cible == Statut.REJETEE:
            if not motif or not motif.strip():
                raise DonnéesInvalides("Un motif de rejet est obligatoire.")
            self.motif_rejet = motif.strip()
        elif cible == Statut.CONFIRMEE:
            paires = [(self.ligne(a), q) for a, q in quantités.items()]
            for ligne, q in paires:
                ligne.contrôler_accord(q)
            for ligne, q in paires:
                ligne.accorder(q)
        elif cible == Statut.EXPEDIEE:
            if not document_url:
                raise DonnéesInvalides("Le bon de livraison est obligatoire.")
            self.bon_livraison_url = document_url
            self.date_expédition = date
            self.transporteur = transporteur
            self.numéro_suivi = numéro_suivi
        elif cible == Statut.RECEPTIONNEE:
            if self.exige_bon_émargé and not document_url:
                raise DonnéesInvalides("Le bon de livraison émargé est obligatoire.")
            for article_id in quantités:
                self.ligne(article_id)
            livrées = [
                (ligne, quantités.get(ligne.article_id, ligne.quantité_facturable))
                for ligne in self.lignes
            ]
            for ligne, q in livrées:
                ligne.contrôler_livraison(q)
            for ligne, q in livrées:
                ligne.livrer(q)
            self.bon_livraison_émargé_url = document_url
            self.non_conformités = non_conformités
            self.date_réception = date

        self.statut = cible
        self.historique.append(ÉtapeHistorique(cible, date, acteur.id))
        self.recalculer_total()
        self.numéro_version += 1
        self.événements.append(
            events.StatutModifié(
                type_document=self.type_document.value,
                référence=self.référence,
                ancien_statut=ancien.value,
                nouveau_statut=cible.value,
                par_acteur_id=acteur.id,
            )
        )
        if cible == Statut.REJETEE:
            self.événements.append(
                events.DocumentRejeté(
                    type_document=self.type_document.value,
                    référence=self.référence,
                    motif=self.motif_rejet,
                    créé_par=self.créé_par,
                )
            )

    def mouvements_réception(self) -> list[tuple[RéfEntité, str, int]]:
        """
        Mouvements de stock induits par la réception : chaque quantité
        livrée entre chez le destinataire et sort de chez l'expéditeur.
        """
        mouvements = []
        for ligne in self.lignes:
            quantité = ligne.quantité_livrée or 0
            if quantité:
                mouvements.append((self.destinataire, ligne.article_id, quantité))
                mouvements.append((self.expéditeur, ligne.article_id, -quantité))
        return mouvements


class DemandeTransfert(DocumentWorkflow):
    """Demande d'une station (destination) à une autre station (source)."""

    type_document = TypeDocument.TRANSFERT
    workflow = WORKFLOW_TRANSFERT
    préfixe = "TRF"
    exige_bon_émargé = True

    def __init__(
        self,
        référence: str,
        station_destination_id: str,
        station_source_id: str,
        lignes: Iterable[Ligne],
        créé_par: str,
        numéro_version: int = 0,
    ):
        if station_destination_id == station_source_id:
            raise DonnéesInvalides(
                "La station demandeuse et la station source doivent être différentes"
            )
        self.station_destination_id = station_destination_id
        self.station_source_id = station_source_id
        super().__init__(référence, lignes, créé_par, numéro_version)

    @property
    def station_destination(self) -> RéfStation:
        return RéfStation(self.station_destination_id)

    @property
    def station_source(self) -> RéfStation:
        return RéfStation(self.station_source_id)

    @property
    def expéditeur(self) -> RéfEntité:
        return self.station_source

    @property
    def destinataire(self) -> RéfEntité:
        return self.station_destination


class Commande(DocumentWorkflow):
    """Commande d'une station auprès d'un fournisseur."""

    type_document = TypeDocument.COMMANDE
    workflow = WORKFLOW_COMMANDE
    préfixe = "CMD"

    def __init__(
        self,
        référence: str,
        station_id: str,
        fournisseur_id: str,
        lignes: Iterable[Ligne],
        créé_par: str,
        numéro_version: int = 0,
    ):
        self.station_id = station_id
        self.fournisseur_id = fournisseur_id
        super().__init__(référence, lignes, créé_par, numéro_version)

    @property
    def station(self) -> RéfStation:
        return RéfStation(self.station_id)

    @property
    def fournisseur(self) -> RéfFournisseur:
        return RéfFournisseur(self.fournisseur_id)

    @property
    def expéditeur(self) -> RéfEntité:
        return self.fournisseur

    @property
    def destinataire(self) -> RéfEntité:
        return self.station


class Stock:
    """
    Quantité d'un article détenue par un site.

    Un seul Stock par (type de site, site, article). La quantité peut
    devenir négative après une réception : le mouvement est enregistré
    et un event StockNégatif est émis.
    """

    def __init__(self, site: RéfEntité, article_id: str, quantité: int = 0):
        if _entier(quantité, "La quantité en stock") < 0:
            raise DonnéesInvalides("La quantité en stock ne peut être négative")
        self.type_site = site.type
        self.site_id = site.id
        self.article_id = article_id
        self.quantité = quantité
        self.événements: list[events.Event] = []

    def __repr__(self) -> str:
        return f"<Stock {self.type_site.value}:{self.site_id} {self.article_id}={self.quantité}>"

    @property
    def site(self) -> RéfEntité:
        return réf_entité(self.type_site, self.site_id)

    def mouvementer(self, delta: int) -> None:
        self.quantité += delta
        if self.quantité < 0:
            self.événements.append(
                events.StockNégatif(
                    type_site=TypeEntité(self.type_site).value,
                    site_id=self.site_id,
                    article_id=self.article_id,
                    quantité=self.quantité,
                )
            )

    def ajuster(self, quantité: int) -> None:
        if _entier(quantité, "La quantité en stock") < 0:
            raise DonnéesInvalides("La quantité en stock ne peut être négative")
        self.quantité = quantité
