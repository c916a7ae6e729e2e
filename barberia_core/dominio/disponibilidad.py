# barberia_core/dominio/disponibilidad.py
"""
Cálculo de turnos disponibles.

Dada la regla de horario de la sucursal para un día, la duración del servicio,
los barberos candidatos y sus intervalos ocupados, arma la lista de turnos y,
para cada turno, qué barberos están libres. Es una función pura: no lee la
base ni el reloj, solo el día que le pasan.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from barberia_core.dominio.intervalos import Intervalo, add_minutes, overlaps

logger = logging.getLogger(__name__)

APERTURA_FALLBACK = "09:00"
CIERRE_FALLBACK = "18:00"
PASO_HORA_MIN = 60


class PoliticaPaso(str, Enum):
    """
    margen: cada turno empieza duracion + margen después del anterior.
    hora:   turnos alineados cada 60 minutos, sin margen.
    """
    margen = "margen"
    hora = "hora"


@dataclass(frozen=True)
class ReglaHorario:
    apertura: time
    cierre: time


@dataclass(frozen=True)
class Turno:
    inicio: datetime
    fin: datetime
    # En el orden de los candidatos, sin repetidos
    barberos_libres: Tuple[int, ...]

    @property
    def disponible(self) -> bool:
        return bool(self.barberos_libres)


def indice_dia_semana(d: date) -> int:
    """0 = domingo ... 6 = sábado (date.weekday() usa 0 = lunes)."""
    return (d.weekday() + 1) % 7


def parse_hhmm(valor: str) -> time:
    partes = str(valor).strip().split(":")
    if len(partes) < 2:
        raise ValueError(f"hora inválida: {valor!r} (usa HH:MM)")
    hh, mm = int(partes[0]), int(partes[1])
    return time(hh, mm)


def resolve_hours_rule(horario: Optional[Mapping[Any, Any]], dia: date) -> ReglaHorario:
    """
    Regla del día de la semana, si no la "default", y si no 09:00-18:00.
    Nunca devuelve un horario vacío: los clientes dependen de eso.
    """
    horario = horario or {}
    idx = indice_dia_semana(dia)

    regla = horario.get(str(idx))
    if regla is None:
        regla = horario.get(idx)
    if regla is None:
        regla = horario.get("default")
    regla = regla or {}

    inicio = regla.get("inicio")
    fin = regla.get("fin")
    try:
        apertura = parse_hhmm(inicio if inicio is not None else APERTURA_FALLBACK)
        cierre = parse_hhmm(fin if fin is not None else CIERRE_FALLBACK)
    except ValueError:
        logger.warning("Regla de horario mal formada para el día %s: %r", idx, regla)
        apertura = parse_hhmm(APERTURA_FALLBACK)
        cierre = parse_hhmm(CIERRE_FALLBACK)

    return ReglaHorario(apertura=apertura, cierre=cierre)


def elegir_politica(margen_min: Optional[int], politica: Optional[PoliticaPaso]) -> PoliticaPaso:
    if politica is not None:
        return politica
    # Sin margen configurado se usan pasos de una hora
    return PoliticaPaso.hora if margen_min is None else PoliticaPaso.margen


def compute_slots(
    regla: ReglaHorario,
    dia: date,
    duracion_min: int,
    candidatos: Sequence[int],
    ocupados_por_barbero: Mapping[int, Iterable[Intervalo]],
    margen_min: Optional[int] = None,
    politica: Optional[PoliticaPaso] = None,
    omitir_no_disponibles: bool = False,
) -> List[Turno]:
    """
    Recorre el día desde la apertura mientras el turno entre antes del cierre.
    Los turnos sin barberos libres se devuelven igual (la UI los deshabilita)
    salvo que se pida omitirlos. Duración o margen inválidos, o un horario
    con apertura >= cierre, devuelven lista vacía.
    """
    politica = elegir_politica(margen_min, politica)
    margen = margen_min or 0

    inicio_dia = datetime.combine(dia, regla.apertura)
    fin_dia = datetime.combine(dia, regla.cierre)

    if duracion_min <= 0 or margen < 0 or inicio_dia >= fin_dia:
        return []

    if politica is PoliticaPaso.margen:
        paso = duracion_min + margen
    else:
        paso = PASO_HORA_MIN

    barberos = list(dict.fromkeys(candidatos))
    ocupados = {b: list(ocupados_por_barbero.get(b, ())) for b in barberos}

    turnos: List[Turno] = []
    t = inicio_dia
    while add_minutes(t, duracion_min) <= fin_dia:
        candidato = Intervalo(t, add_minutes(t, duracion_min))
        libres = tuple(
            b for b in barberos
            if not any(overlaps(candidato, o) for o in ocupados[b])
        )
        if libres or not omitir_no_disponibles:
            turnos.append(Turno(inicio=candidato.inicio, fin=candidato.fin, barberos_libres=libres))
        t = add_minutes(t, paso)

    return turnos


def slots_for_staff(
    regla: ReglaHorario,
    dia: date,
    duracion_min: int,
    barbero_id: int,
    ocupados: Iterable[Intervalo],
    margen_min: Optional[int] = None,
    politica: Optional[PoliticaPaso] = None,
) -> List[Turno]:
    """
    Flujo "primero el barbero, después la hora": solo los turnos libres
    del barbero elegido.
    """
    return compute_slots(
        regla,
        dia,
        duracion_min,
        [barbero_id],
        {barbero_id: list(ocupados)},
        margen_min=margen_min,
        politica=politica,
        omitir_no_disponibles=True,
    )
