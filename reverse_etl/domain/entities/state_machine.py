"""
Maquina de estados minima basada en tabla de transiciones.

Cada entidad declara sus eventos (origenes -> destino). El estado actual
vive en el atributo `status` de la entidad; un evento ilegal lanza
StateTransitionError y deja el estado intacto.
"""
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, Iterable

from reverse_etl.shared.exceptions.domain import StateTransitionError


@dataclass(frozen=True)
class Transition:
    """Evento de la maquina: desde cualquiera de `sources` hacia `target`."""

    sources: FrozenSet[Enum]
    target: Enum

    @classmethod
    def of(cls, sources: Iterable[Enum], target: Enum) -> "Transition":
        return cls(sources=frozenset(sources), target=target)


class StateMachineMixin:
    """
    Mixin para entidades con `status`.

    Las subclases definen `TRANSITIONS` (nombre de evento -> Transition)
    y `ENTITY_NAME` para los mensajes de error.
    """

    TRANSITIONS: ClassVar[Dict[str, Transition]] = {}
    ENTITY_NAME: ClassVar[str] = "Entity"

    def may_fire(self, event: str) -> bool:
        """Indica si el evento es legal desde el estado actual."""
        transition = self.TRANSITIONS.get(event)
        return transition is not None and self.status in transition.sources

    def fire(self, event: str) -> Enum:
        """
        Aplica el evento y retorna el nuevo estado.

        Raises:
            StateTransitionError: si el evento no existe o no es legal desde el estado actual
        """
        if not self.may_fire(event):
            current = getattr(self.status, "value", self.status)
            raise StateTransitionError(self.ENTITY_NAME, event, str(current))
        self.status = self.TRANSITIONS[event].target
        return self.status
