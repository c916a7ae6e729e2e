# barberia_core/dominio/intervalos.py
"""
Primitivas de tiempo para la agenda.

Todas las horas son de pared (hora local de la sucursal, sin zona). No se
corrige nada por cambios de horario de verano: es una limitación conocida.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Intervalo:
    """Intervalo semiabierto [inicio, fin)."""

    inicio: datetime
    fin: datetime

    def __post_init__(self) -> None:
        if self.inicio >= self.fin:
            raise ValueError("inicio debe ser anterior a fin")

    @property
    def minutos(self) -> int:
        return int((self.fin - self.inicio).total_seconds() // 60)


def overlaps(a: Intervalo, b: Intervalo) -> bool:
    # Extremos que se tocan no se solapan: 09:00-10:00 y 10:00-11:00 conviven
    return a.inicio < b.fin and b.inicio < a.fin


def add_minutes(instante: datetime, minutos: int) -> datetime:
    return instante + timedelta(minutes=minutos)
