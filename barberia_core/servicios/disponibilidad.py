# barberia_core/servicios/disponibilidad.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from barberia_core.config import MARGEN_MINUTOS_DEFAULT
from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import (
    EstadoOrden,
    Orden,
    Role,
    Servicio,
    Sucursal,
    Usuario,
)
from barberia_core.dominio.disponibilidad import (
    PoliticaPaso,
    compute_slots,
    elegir_politica,
    resolve_hours_rule,
    slots_for_staff,
)
from barberia_core.dominio.errores import NotFoundError
from barberia_core.dominio.intervalos import Intervalo
from barberia_core.security import get_current_user

router = APIRouter()


# =========================
# Esquemas de respuesta
# =========================

class TurnoOut(BaseModel):
    inicio: datetime
    fin: datetime
    disponible: bool
    barberos_libres: List[int]


class DisponibilidadOut(BaseModel):
    sucursal_id: int
    servicio_id: int
    fecha: date
    apertura: time
    cierre: time
    duracion_min: int
    politica: PoliticaPaso
    turnos: List[TurnoOut]


# =========================
# Helpers de lectura
# =========================

def obtener_sucursal(session: Session, sucursal_id: int) -> Sucursal:
    sucursal = session.get(Sucursal, sucursal_id)
    if not sucursal or not sucursal.activo:
        raise NotFoundError(f"Sucursal inválida o inactiva (id={sucursal_id})")
    return sucursal


def barberos_activos(session: Session, sucursal_id: int) -> List[int]:
    q = select(Usuario.id).where(
        Usuario.sucursal_id == sucursal_id,
        Usuario.rol == Role.barbero,
        Usuario.activo == True,  # noqa: E712
    ).order_by(Usuario.id.asc())
    return list(session.exec(q).all())


def cargar_ocupados(
    session: Session,
    barbero_ids: Sequence[int],
    desde: datetime,
    hasta: datetime,
    excluir_orden_id: Optional[int] = None,
) -> Dict[int, List[Intervalo]]:
    """
    Intervalos ocupados por barbero: órdenes no canceladas que se solapan
    con [desde, hasta).
    """
    ocupados: Dict[int, List[Intervalo]] = {b: [] for b in barbero_ids}
    if not barbero_ids:
        return ocupados

    q = select(Orden).where(
        Orden.barbero_id.in_(list(barbero_ids)),  # type: ignore
        Orden.estado != EstadoOrden.cancelada,
        Orden.inicio < hasta,
        Orden.fin > desde,
    )
    if excluir_orden_id is not None:
        q = q.where(Orden.id != excluir_orden_id)

    for o in session.exec(q).all():
        if o.inicio is None or o.fin is None or o.inicio >= o.fin:
            continue
        ocupados.setdefault(o.barbero_id, []).append(Intervalo(o.inicio, o.fin))
    return ocupados


# =========================
# Endpoint principal
# =========================

@router.get("/turnos", response_model=DisponibilidadOut)
def listar_turnos(
    sucursal_id: int,
    servicio_id: int,
    fecha: date,
    politica: Optional[PoliticaPaso] = None,
    margen: Optional[int] = None,
    barbero_id: Optional[int] = None,
    omitir_no_disponibles: bool = False,
    session: Session = Depends(get_session),
    _user=Depends(get_current_user),
) -> DisponibilidadOut:
    """
    Turnos del día para un servicio.
      - Sin barbero_id: todos los barberos activos de la sucursal, cada turno
        con sus barberos libres (primero la hora, después el barbero).
      - Con barbero_id: solo los turnos libres de ese barbero.
    Si se pide politica=margen sin margen, se usa el margen configurado.
    """
    sucursal = obtener_sucursal(session, sucursal_id)

    servicio = session.get(Servicio, servicio_id)
    if (
        not servicio
        or servicio.sucursal_id != sucursal_id
        or not servicio.activo
        or servicio.eliminado_en is not None
    ):
        raise NotFoundError(f"Servicio inválido o inactivo (id={servicio_id})")

    if politica is PoliticaPaso.margen and margen is None:
        margen = MARGEN_MINUTOS_DEFAULT

    regla = resolve_hours_rule(sucursal.horario_apertura, fecha)
    desde = datetime.combine(fecha, time.min)
    hasta = desde + timedelta(days=1)

    if barbero_id is not None:
        candidatos = [b for b in barberos_activos(session, sucursal_id) if b == barbero_id]
        if not candidatos:
            raise NotFoundError(f"Barbero inválido para la sucursal (id={barbero_id})")
        ocupados = cargar_ocupados(session, candidatos, desde, hasta)
        turnos = slots_for_staff(
            regla,
            fecha,
            servicio.duracion_min,
            barbero_id,
            ocupados[barbero_id],
            margen_min=margen,
            politica=politica,
        )
    else:
        candidatos = barberos_activos(session, sucursal_id)
        ocupados = cargar_ocupados(session, candidatos, desde, hasta)
        turnos = compute_slots(
            regla,
            fecha,
            servicio.duracion_min,
            candidatos,
            ocupados,
            margen_min=margen,
            politica=politica,
            omitir_no_disponibles=omitir_no_disponibles,
        )

    return DisponibilidadOut(
        sucursal_id=sucursal_id,
        servicio_id=servicio_id,
        fecha=fecha,
        apertura=regla.apertura,
        cierre=regla.cierre,
        duracion_min=servicio.duracion_min,
        politica=elegir_politica(margen, politica),
        turnos=[
            TurnoOut(
                inicio=t.inicio,
                fin=t.fin,
                disponible=t.disponible,
                barberos_libres=list(t.barberos_libres),
            )
            for t in turnos
        ],
    )
