"""
Bootstrap : assemblage de l'application (Composition Root).

Ce module construit le message bus avec toutes ses dépendances.
C'est le seul endroit de l'application qui connaît les
implémentations concrètes de chaque abstraction.
"""

from __future__ import annotations

from typing import Any

from emballages.adapters import notifications, orm
from emballages.domain import commands, events
from emballages.service_layer import handlers, messagebus, unit_of_work


def bootstrap(
    start_orm: bool = True,
    uow: unit_of_work.AbstractUnitOfWork | None = None,
    notifications_adapter: notifications.AbstractNotifications | None = None,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    En production, utilise les implémentations concrètes.
    En test, on injecte des fakes via les paramètres.
    """
    if start_orm:
        orm.start_mappers()

    if uow is None:
        uow = unit_of_work.SqlAlchemyUnitOfWork()

    if notifications_adapter is None:
        notifications_adapter = notifications.EmailNotifications()

    dependencies: dict[str, Any] = {
        "notifications": notifications_adapter,
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        uow=uow,
        event_handlers=EVENT_HANDLERS,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
    )


# --- Routage des messages vers les handlers ---

EVENT_HANDLERS: dict[type[events.Event], list] = {
    events.StatutModifié: [handlers.journaliser_changement_statut],
    events.DocumentRejeté: [handlers.notifier_rejet],
    events.StockNégatif: [handlers.notifier_stock_négatif],
}

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.CréerDemandeTransfert: handlers.créer_demande_transfert,
    commands.ModifierDemandeTransfert: handlers.modifier_demande_transfert,
    commands.SupprimerDemandeTransfert: handlers.supprimer_demande_transfert,
    commands.ChangerStatutDemande: handlers.changer_statut_demande,
    commands.CréerCommande: handlers.créer_commande,
    commands.ChangerStatutCommande: handlers.changer_statut_commande,
    commands.CréerStock: handlers.créer_stock,
    commands.AjusterStock: handlers.ajuster_stock,
}
