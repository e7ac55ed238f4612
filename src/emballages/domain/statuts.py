"""
Statuts, rôles et tables de transition.

Le graphe des statuts légaux est décrit ici, en un seul endroit, sous
forme de tables explicites : une pour les demandes de transfert, une pour
les commandes fournisseurs. Chaque arête précise les rôles autorisés et,
le cas échéant, la partie du document que l'acteur doit représenter.

Les libellés français sont les valeurs persistées.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from emballages.domain.exceptions import TransitionInterdite, TransitionInvalide

if TYPE_CHECKING:
    from emballages.domain.model import Acteur, DocumentWorkflow


class Statut(str, enum.Enum):
    ENREGISTREE = "Enregistrée"
    CONFIRMEE = "Confirmée"
    REJETEE = "Rejetée"
    TRAITEE_LOGISTIQUE = "Traitée logistique"
    EXPEDIEE = "Expédiée"
    RECEPTIONNEE = "Réceptionnée"
    CLOTUREE = "Clôturée"
    TRAITEE_COMPTABILITE = "Traitée comptabilité"
    FACTUREE = "Facturée"
    ARCHIVEE = "Archivée"


class Rôle(str, enum.Enum):
    MANAGER = "Manager"
    GESTIONNAIRE = "Gestionnaire"
    STATION = "Station"
    FOURNISSEUR = "Fournisseur"


class TypeDocument(str, enum.Enum):
    TRANSFERT = "transfert"
    COMMANDE = "commande"


ADMINISTRATION = frozenset({Rôle.GESTIONNAIRE, Rôle.MANAGER})


@dataclass(frozen=True)
class Transition:
    """
    Arête du graphe des statuts.

    `propriétaire` nomme l'attribut du document (une référence d'entité)
    que l'acteur doit représenter ; None signifie que le rôle suffit.
    """

    source: Statut
    cible: Statut
    rôles: frozenset[Rôle]
    propriétaire: Optional[str] = None

    def autorise(self, acteur: Acteur, document: DocumentWorkflow) -> bool:
        if acteur.rôle not in self.rôles:
            return False
        if self.propriétaire is None:
            return True
        return acteur.entité == getattr(document, self.propriétaire)


class Workflow:
    """
    Table de transitions d'un type de document.

    Le Workflow ne mute rien : il répond à « cette transition est-elle
    légale ? » et « cet acteur peut-il l'effectuer ? ».
    """

    def __init__(self, nom: str, initial: Statut, transitions: Iterable[Transition]):
        self.nom = nom
        self.initial = initial
        self.transitions = tuple(transitions)
        self._arêtes = {(t.source, t.cible): t for t in self.transitions}

    def __repr__(self) -> str:
        return f"<Workflow {self.nom}>"

    @property
    def statuts(self) -> frozenset[Statut]:
        connus = {self.initial}
        for t in self.transitions:
            connus.update((t.source, t.cible))
        return frozenset(connus)

    @property
    def terminaux(self) -> frozenset[Statut]:
        """Statuts sans aucune transition sortante."""
        sources = {t.source for t in self.transitions}
        return frozenset(s for s in self.statuts if s not in sources)

    def transition(self, source: Statut, cible: Statut) -> Transition | None:
        return self._arêtes.get((source, cible))

    def peut_transitionner(
        self, source: Statut, cible: Statut, rôle: Rôle | None = None
    ) -> bool:
        """
        Vrai si (source, cible) est une arête de la table et, si un rôle
        est donné, si ce rôle figure parmi les rôles autorisés.

        La transition d'un statut vers lui-même n'est pas une arête :
        elle est traitée comme un no-op par la service layer.
        """
        t = self.transition(source, cible)
        if t is None:
            return False
        return rôle is None or rôle in t.rôles

    def vérifier(self, source: Statut, cible: Statut) -> Transition:
        """Retourne l'arête (source, cible) ou lève TransitionInvalide."""
        t = self.transition(source, cible)
        if t is not None:
            return t
        if source in self.terminaux:
            raise TransitionInvalide(
                f"Le statut « {source.value} » est terminal : aucune transition possible"
            )
        raise TransitionInvalide(
            f"Transition de statut invalide : {source.value} vers {cible.value}"
        )

    def autoriser(
        self, transition: Transition, document: DocumentWorkflow, acteur: Acteur
    ) -> None:
        if acteur.rôle not in transition.rôles:
            raise TransitionInterdite("Accès refusé. Droits insuffisants.")
        if not transition.autorise(acteur, document):
            raise TransitionInterdite(
                "Action non autorisée. Vous n'êtes pas le propriétaire de ce document."
            )

    def entrantes(self, cible: Statut) -> list[Transition]:
        return [t for t in self.transitions if t.cible == cible]

    def rôles_pour(self, cible: Statut) -> frozenset[Rôle]:
        """Rôles autorisés sur au moins une arête menant à `cible`."""
        rôles: set[Rôle] = set()
        for t in self.entrantes(cible):
            rôles |= t.rôles
        return frozenset(rôles)

    def vérifier_éligibilité(
        self, cible: Statut, document: DocumentWorkflow, acteur: Acteur
    ) -> None:
        """
        Vérifie qu'au moins une arête entrant dans `cible` autorise l'acteur.

        Utilisé pour la transition d'un statut vers lui-même : le no-op
        n'est accordé qu'à un acteur qui aurait pu atteindre ce statut.
        Le statut initial n'a pas d'arête entrante et reste libre.
        """
        entrantes = self.entrantes(cible)
        if not entrantes:
            return
        if not any(acteur.rôle in t.rôles for t in entrantes):
            raise TransitionInterdite("Accès refusé. Droits insuffisants.")
        if not any(t.autorise(acteur, document) for t in entrantes):
            raise TransitionInterdite(
                "Action non autorisée. Vous n'êtes pas le propriétaire de ce document."
            )

    def suivants(
        self,
        statut: Statut,
        acteur: Acteur | None = None,
        document: DocumentWorkflow | None = None,
    ) -> list[Statut]:
        """Statuts atteignables depuis `statut`, filtrés par acteur si fourni."""
        résultat = []
        for t in self.transitions:
            if t.source != statut:
                continue
            if acteur is not None:
                if acteur.rôle not in t.rôles:
                    continue
                if document is not None and not t.autorise(acteur, document):
                    continue
            résultat.append(t.cible)
        return résultat


WORKFLOW_TRANSFERT = Workflow(
    "transfert",
    initial=Statut.ENREGISTREE,
    transitions=[
        Transition(Statut.ENREGISTREE, Statut.CONFIRMEE,
                   frozenset({Rôle.STATION}), "station_source"),
        Transition(Statut.ENREGISTREE, Statut.REJETEE,
                   frozenset({Rôle.STATION}), "station_source"),
        Transition(Statut.CONFIRMEE, Statut.TRAITEE_LOGISTIQUE, ADMINISTRATION),
        Transition(Statut.TRAITEE_LOGISTIQUE, Statut.EXPEDIEE,
                   frozenset({Rôle.STATION}), "station_source"),
        Transition(Statut.EXPEDIEE, Statut.RECEPTIONNEE,
                   frozenset({Rôle.STATION}), "station_destination"),
        Transition(Statut.RECEPTIONNEE, Statut.CLOTUREE,
                   frozenset({Rôle.STATION}), "station_destination"),
        Transition(Statut.CLOTUREE, Statut.TRAITEE_COMPTABILITE, ADMINISTRATION),
        Transition(Statut.TRAITEE_COMPTABILITE, Statut.ARCHIVEE, ADMINISTRATION),
    ],
)

WORKFLOW_COMMANDE = Workflow(
    "commande",
    initial=Statut.ENREGISTREE,
    transitions=[
        Transition(Statut.ENREGISTREE, Statut.CONFIRMEE,
                   frozenset({Rôle.FOURNISSEUR}), "fournisseur"),
        Transition(Statut.ENREGISTREE, Statut.REJETEE,
                   frozenset({Rôle.FOURNISSEUR}), "fournisseur"),
        Transition(Statut.CONFIRMEE, Statut.EXPEDIEE,
                   frozenset({Rôle.FOURNISSEUR}), "fournisseur"),
        Transition(Statut.EXPEDIEE, Statut.RECEPTIONNEE,
                   frozenset({Rôle.STATION}), "station"),
        Transition(Statut.RECEPTIONNEE, Statut.CLOTUREE,
                   frozenset({Rôle.STATION}), "station"),
        Transition(Statut.CLOTUREE, Statut.FACTUREE, ADMINISTRATION),
        Transition(Statut.FACTUREE, Statut.ARCHIVEE, ADMINISTRATION),
    ],
)

WORKFLOWS = {
    TypeDocument.TRANSFERT: WORKFLOW_TRANSFERT,
    TypeDocument.COMMANDE: WORKFLOW_COMMANDE,
}
