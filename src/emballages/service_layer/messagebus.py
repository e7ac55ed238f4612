"""
Message Bus.

Le message bus est le point central de dispatch des messages
(commands et events) vers leurs handlers respectifs.

Fonctionnement :
1. Un message (command ou event) entre dans le bus
2. Le bus trouve le(s) handler(s) correspondant(s)
3. Le handler est exécuté
4. Les événements émis pendant l'exécution sont collectés et traités à leur tour

Une command a exactement UN handler et ses erreurs (ErreurMétier
comprises) remontent à l'appelant. Un event peut avoir 0 à N handlers ;
leurs erreurs sont loggées sans interrompre les autres.

Ici, un rejet de document prévient son créateur par notification.
Un stock passé sous zéro après une réception alerte la logistique.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Union

from emballages.domain import commands, events
from emballages.service_layer import unit_of_work

logger = logging.getLogger(__name__)

Message = Union[commands.Command, events.Event]


class MessageBus:
    """
    Message Bus avec injection de dépendances.

    Les dépendances (uow, notifications, etc.) sont injectées
    à la construction et transmises automatiquement aux handlers
    par introspection de leurs signatures.
    """

    def __init__(
        self,
        uow: unit_of_work.AbstractUnitOfWork,
        event_handlers: dict[type[events.Event], list[Callable]],
        command_handlers: dict[type[commands.Command], Callable],
        dependencies: dict[str, Any] | None = None,
    ):
        self.uow = uow
        self.event_handlers = event_handlers
        self.command_handlers = command_handlers
        self.dependencies = dependencies or {}
        self.queue: list[Message] = []

    def handle(self, message: Message) -> list[Any]:
        """
        Traite un message et tous les événements qui en découlent.

        Retourne les résultats des command handlers, dans l'ordre.
        """
        self.queue = [message]
        results: list[Any] = []
        while self.queue:
            message = self.queue.pop(0)
            if isinstance(message, events.Event):
                self._handle_event(message)
            elif isinstance(message, commands.Command):
                result = self._handle_command(message)
                results.append(result)
            else:
                raise ValueError(f"Message de type inconnu : {type(message)}")
        return results

    def _handle_event(self, event: events.Event) -> None:
        for handler in self.event_handlers.get(type(event), []):
            try:
                logger.debug("Traitement de l'event %s avec %s", event, handler.__name__)
                self._call_handler(handler, event)
                self.queue.extend(self.uow.collect_new_events())
            except Exception:
                logger.exception("Erreur lors du traitement de l'event %s", event)

    def _handle_command(self, command: commands.Command) -> Any:
        logger.debug("Traitement de la command %s", type(command).__name__)
        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Aucun handler pour la command {type(command)}")
        result = self._call_handler(handler, command)
        self.queue.extend(self.uow.collect_new_events())
        return result

    def _call_handler(self, handler: Callable, message: Message) -> Any:
        """
        Appelle un handler en injectant les dépendances nécessaires.

        Le premier paramètre est toujours le message lui-même ; les
        suivants sont résolus par nom dans le dictionnaire de dépendances
        ou via self.uow.
        """
        params = list(inspect.signature(handler).parameters)
        kwargs: dict[str, Any] = {}
        for name in params[1:]:
            if name == "uow":
                kwargs[name] = self.uow
            elif name in self.dependencies:
                kwargs[name] = self.dependencies[name]

        return handler(message, **kwargs)
