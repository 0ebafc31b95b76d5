"""
Message Bus.

Le message bus est le point central de dispatch des messages
(commands et events) vers leurs handlers respectifs.

Fonctionnement :
1. Un message (command ou event) entre dans le bus
2. Le bus trouve le(s) handler(s) correspondant(s)
3. Le handler est exécuté
4. Les événements committés pendant l'exécution sont collectés et traités à leur tour

Différences clés :
- Une command a exactement UN handler ; l'erreur remonte à l'appelant
- Un event peut avoir 0 à N handlers ; les erreurs sont loggées mais ne bloquent pas

La file de messages est locale à chaque appel de handle() : le bus
peut être partagé entre threads de requêtes.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Union

from ticketing.domain import commands, events
from ticketing.service_layer import unit_of_work

logger = logging.getLogger(__name__)

Message = Union[commands.Command, events.DomainEvent]


class MessageBus:
    """
    Message Bus avec injection de dépendances.

    Les dépendances (uow, ledger, cache, clock) sont injectées
    à la construction et transmises automatiquement aux handlers
    par introspection de leurs signatures.
    """

    def __init__(
        self,
        uow: unit_of_work.AbstractUnitOfWork,
        event_handlers: dict[type[events.DomainEvent], list[Callable]],
        command_handlers: dict[type[commands.Command], Callable],
        dependencies: dict[str, Any] | None = None,
    ):
        self.uow = uow
        self.event_handlers = event_handlers
        self.command_handlers = command_handlers
        self.dependencies = dependencies or {}

    def handle(self, message: Message) -> list[Any]:
        """
        Point d'entrée principal : traite un message et tous
        les événements qui en découlent (propagation en cascade).
        """
        queue: list[Message] = [message]
        results: list[Any] = []
        while queue:
            message = queue.pop(0)
            if isinstance(message, events.DomainEvent):
                self._handle_event(message, queue)
            elif isinstance(message, commands.Command):
                results.append(self._handle_command(message, queue))
            else:
                raise ValueError(f"Message de type inconnu : {type(message)}")
        return results

    def _handle_event(self, event: events.DomainEvent, queue: list[Message]) -> None:
        """
        Dispatch un event vers tous ses handlers.

        Si un handler échoue, l'erreur est loggée mais les
        autres handlers continuent (tolérance aux pannes).
        """
        for handler in self.event_handlers.get(type(event), []):
            try:
                logger.debug("Traitement de l'event %s avec %s", event, handler.__name__)
                self._call_handler(handler, event)
                queue.extend(self.uow.collect_new_events())
            except Exception:
                logger.exception("Erreur lors du traitement de l'event %s", event)

    def _handle_command(self, command: commands.Command, queue: list[Message]) -> Any:
        """
        Dispatch une command vers son unique handler.

        Même en cas d'échec, les events déjà committés (par exemple
        par une étape de saga compensée) sont publiés avant que
        l'erreur ne remonte à l'appelant.
        """
        logger.debug("Traitement de la command %s", command)
        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Aucun handler pour la command {type(command)}")
        try:
            return self._call_handler(handler, command)
        except Exception:
            pending = list(self.uow.collect_new_events())
            for event in pending:
                self._handle_event(event, [])
            raise
        finally:
            queue.extend(self.uow.collect_new_events())

    def _call_handler(self, handler: Callable, message: Message) -> Any:
        """
        Appelle un handler en injectant les dépendances nécessaires.

        Le premier paramètre est toujours le message lui-même ; les
        suivants sont résolus par nom dans le dictionnaire de
        dépendances ou via self.uow.
        """
        params = list(inspect.signature(handler).parameters)
        kwargs: dict[str, Any] = {}
        for name in params[1:]:
            if name == "uow":
                kwargs[name] = self.uow
            elif name in self.dependencies:
                kwargs[name] = self.dependencies[name]
        return handler(message, **kwargs)
