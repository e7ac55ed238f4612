"""
Handlers pour les commands et events.

Les handlers sont les fonctions qui traitent les commands et events
transitant par le message bus.

- Command handlers : exécutent une action (peuvent échouer)
- Event handlers : réagissent à un fait passé (ne doivent pas échouer)

Le cœur est appliquer_transition : chargement du document, contrôle
de la transition et de l'acteur, effets de bord (lignes, stock), puis
commit unique.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Union

from emballages import config
from emballages.domain import commands, events, model
from emballages.domain.exceptions import Introuvable
from emballages.domain.roles import stratégie_pour
from emballages.domain.statuts import Statut, TypeDocument

if TYPE_CHECKING:
    from emballages.adapters.notifications import AbstractNotifications
    from emballages.adapters.repository import AbstractRepository
    from emballages.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

ChangerStatut = Union[commands.ChangerStatutDemande, commands.ChangerStatutCommande]


# --- Utilitaires ---


def _lignes(articles: Iterable[commands.ArticleDemandé]) -> list[model.Ligne]:
    return [
        model.Ligne(
            article_id=a.article_id,
            quantité_demandée=a.quantité,
            prix_unitaire=a.prix_unitaire,
        )
        for a in articles
    ]


def nouvelle_référence(repo: AbstractRepository, préfixe: str) -> str:
    """Référence suivante de la forme PREFIXE-AAAA-NNNNNN, numérotée par année."""
    début = f"{préfixe}-{model.maintenant().year}-"
    dernière = repo.dernière_référence(début)
    numéro = int(dernière[len(début):]) + 1 if dernière else 1
    return f"{début}{numéro:06d}"


def _charger(repo: AbstractRepository, référence: str) -> model.DocumentWorkflow:
    document = repo.get(référence)
    if document is None:
        raise Introuvable(f"Document introuvable : {référence}")
    return document


def _station_active(uow: AbstractUnitOfWork, station_id: str) -> model.Station:
    station = uow.référentiel.station(station_id)
    if station is None or not station.actif:
        raise Introuvable(f"Station introuvable ou inactive : {station_id}")
    return station


def _fournisseur_actif(uow: AbstractUnitOfWork, fournisseur_id: str) -> model.Fournisseur:
    fournisseur = uow.référentiel.fournisseur(fournisseur_id)
    if fournisseur is None or not fournisseur.actif:
        raise Introuvable(f"Fournisseur introuvable ou inactif : {fournisseur_id}")
    return fournisseur


def _site_connu(uow: AbstractUnitOfWork, site: model.RéfEntité) -> None:
    if isinstance(site, model.RéfStation):
        trouvé = uow.référentiel.station(site.id)
    else:
        trouvé = uow.référentiel.fournisseur(site.id)
    if trouvé is None:
        raise Introuvable(f"{site.type.value} introuvable : {site.id}")


def _mouvementer_stocks(document: model.DocumentWorkflow, uow: AbstractUnitOfWork) -> None:
    """Répercute une réception sur les stocks ; les lignes absentes partent de 0."""
    for site, article_id, delta in document.mouvements_réception():
        stock = uow.stocks.get(site, article_id)
        if stock is None:
            stock = model.Stock(site, article_id, 0)
            uow.stocks.add(stock)
        stock.mouvementer(delta)


def appliquer_transition(
    cmd: ChangerStatut,
    repo: AbstractRepository,
    uow: AbstractUnitOfWork,
) -> model.DocumentWorkflow:
    """
    Fait passer un document au statut demandé.

    Doit être appelée dans le contexte du uow. La transition vers le
    statut courant ne modifie rien, mais seul un acteur éligible à ce
    statut l'obtient sans erreur.
    """
    document = _charger(repo, cmd.référence)
    workflow = document.workflow

    if cmd.statut == document.statut:
        workflow.vérifier_éligibilité(cmd.statut, document, cmd.acteur)
        logger.info("%s déjà au statut %s", document.référence, cmd.statut.value)
        return document

    transition = workflow.vérifier(document.statut, cmd.statut)
    workflow.autoriser(transition, document, cmd.acteur)
    document.appliquer(
        cmd.statut,
        cmd.acteur,
        motif=cmd.motif,
        quantités=cmd.quantités,
        document_url=cmd.document_url,
        transporteur=cmd.transporteur,
        numéro_suivi=cmd.numéro_suivi,
        non_conformités=cmd.non_conformités,
    )
    if cmd.statut == Statut.RECEPTIONNEE:
        _mouvementer_stocks(document, uow)
    uow.commit()
    return document


# --- Command Handlers : demandes de transfert ---


def créer_demande_transfert(
    cmd: commands.CréerDemandeTransfert,
    uow: AbstractUnitOfWork,
) -> str:
    """Enregistre une nouvelle demande et retourne sa référence."""
    stratégie_pour(cmd.acteur).vérifier_création(
        TypeDocument.TRANSFERT, model.RéfStation(cmd.station_destination_id)
    )
    with uow:
        _station_active(uow, cmd.station_destination_id)
        _station_active(uow, cmd.station_source_id)
        référence = nouvelle_référence(uow.demandes, model.DemandeTransfert.préfixe)
        demande = model.DemandeTransfert(
            référence=référence,
            station_destination_id=cmd.station_destination_id,
            station_source_id=cmd.station_source_id,
            lignes=_lignes(cmd.articles),
            créé_par=cmd.acteur.id,
        )
        uow.demandes.add(demande)
        uow.commit()
    logger.info("Demande de transfert %s créée par %s", référence, cmd.acteur.id)
    return référence


def modifier_demande_transfert(
    cmd: commands.ModifierDemandeTransfert,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        demande = _charger(uow.demandes, cmd.référence)
        stratégie_pour(cmd.acteur).vérifier_modification(demande)
        demande.remplacer_lignes(_lignes(cmd.articles))
        uow.commit()


def supprimer_demande_transfert(
    cmd: commands.SupprimerDemandeTransfert,
    uow: AbstractUnitOfWork,
) -> None:
    with uow:
        demande = _charger(uow.demandes, cmd.référence)
        stratégie_pour(cmd.acteur).vérifier_suppression(demande)
        demande.vérifier_modifiable()
        uow.demandes.supprimer(demande)
        uow.commit()
    logger.info("Demande de transfert %s supprimée par %s", cmd.référence, cmd.acteur.id)


def changer_statut_demande(
    cmd: commands.ChangerStatutDemande,
    uow: AbstractUnitOfWork,
) -> Statut:
    with uow:
        demande = appliquer_transition(cmd, uow.demandes, uow)
        return demande.statut


# --- Command Handlers : commandes fournisseurs ---


def créer_commande(
    cmd: commands.CréerCommande,
    uow: AbstractUnitOfWork,
) -> str:
    stratégie_pour(cmd.acteur).vérifier_création(
        TypeDocument.COMMANDE, model.RéfStation(cmd.station_id)
    )
    with uow:
        _station_active(uow, cmd.station_id)
        _fournisseur_actif(uow, cmd.fournisseur_id)
        référence = nouvelle_référence(uow.commandes, model.Commande.préfixe)
        commande = model.Commande(
            référence=référence,
            station_id=cmd.station_id,
            fournisseur_id=cmd.fournisseur_id,
            lignes=_lignes(cmd.articles),
            créé_par=cmd.acteur.id,
        )
        uow.commandes.add(commande)
        uow.commit()
    logger.info("Commande %s créée par %s", référence, cmd.acteur.id)
    return référence


def changer_statut_commande(
    cmd: commands.ChangerStatutCommande,
    uow: AbstractUnitOfWork,
) -> Statut:
    with uow:
        commande = appliquer_transition(cmd, uow.commandes, uow)
        return commande.statut


# --- Command Handlers : stocks ---


def créer_stock(
    cmd: commands.CréerStock,
    uow: AbstractUnitOfWork,
) -> None:
    """Crée le stock d'un article sur un site ; lève Conflit s'il existe déjà."""
    stratégie_pour(cmd.acteur).vérifier_accès_site(cmd.site)
    with uow:
        _site_connu(uow, cmd.site)
        uow.stocks.add(model.Stock(cmd.site, cmd.article_id, cmd.quantité))
        uow.commit()


def ajuster_stock(
    cmd: commands.AjusterStock,
    uow: AbstractUnitOfWork,
) -> None:
    stratégie_pour(cmd.acteur).vérifier_accès_site(cmd.site)
    with uow:
        stock = uow.stocks.get(cmd.site, cmd.article_id)
        if stock is None:
            raise Introuvable(
                f"Aucun stock pour l'article {cmd.article_id} sur le site {cmd.site.id}"
            )
        stock.ajuster(cmd.quantité)
        uow.commit()


# --- Event Handlers ---


def journaliser_changement_statut(event: events.StatutModifié) -> None:
    logger.info(
        "%s %s : %s -> %s (par %s)",
        event.type_document, event.référence,
        event.ancien_statut, event.nouveau_statut, event.par_acteur_id,
    )


def notifier_rejet(
    event: events.DocumentRejeté,
    notifications: AbstractNotifications,
) -> None:
    """Prévient la logistique qu'un document a été rejeté."""
    notifications.send(
        destination=config.get_notifications_email(),
        message=(
            f"Le document {event.référence} ({event.type_document}) a été rejeté."
            f" Motif : {event.motif}"
        ),
    )


def notifier_stock_négatif(
    event: events.StockNégatif,
    notifications: AbstractNotifications,
) -> None:
    logger.warning(
        "Stock négatif : %s %s, article %s = %d",
        event.type_site, event.site_id, event.article_id, event.quantité,
    )
    notifications.send(
        destination=config.get_notifications_email(),
        message=(
            f"Stock négatif pour l'article {event.article_id}"
            f" sur le site {event.site_id} ({event.type_site}) : {event.quantité}"
        ),
    )
