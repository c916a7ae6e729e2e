# barberia_core/servicios/sucursales.py
from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, model_validator
from sqlmodel import Session

from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import Role, Sucursal
from barberia_core.dominio.disponibilidad import parse_hhmm
from barberia_core.security import get_current_user, require_role, require_sucursal
from barberia_core.servicios.disponibilidad import obtener_sucursal

router = APIRouter()

CLAVES_VALIDAS = {str(i) for i in range(7)} | {"default"}


# =========================
# Esquemas
# =========================

class FranjaHorario(BaseModel):
    inicio: str
    fin: str

    @model_validator(mode="after")
    def _apertura_antes_de_cierre(self) -> "FranjaHorario":
        if parse_hhmm(self.inicio) >= parse_hhmm(self.fin):
            raise ValueError("la apertura debe ser anterior al cierre")
        return self


class HorarioIn(BaseModel):
    # "0".."6" (0 = domingo) y/o "default"
    horario: Dict[str, FranjaHorario]

    @model_validator(mode="after")
    def _claves(self) -> "HorarioIn":
        invalidas = set(self.horario) - CLAVES_VALIDAS
        if invalidas:
            raise ValueError(f"días inválidos: {sorted(invalidas)}")
        return self


class SucursalCreate(BaseModel):
    nombre: str
    direccion: Optional[str] = None
    horario: Optional[HorarioIn] = None


# =========================
# Endpoints
# =========================

@router.post("/", response_model=Sucursal, status_code=status.HTTP_201_CREATED)
def crear_sucursal(
    body: SucursalCreate,
    session: Session = Depends(get_session),
    _user=Depends(require_role(Role.admin)),
):
    sucursal = Sucursal(
        nombre=body.nombre,
        direccion=body.direccion,
        horario_apertura=_a_json(body.horario) if body.horario else {},
    )
    session.add(sucursal)
    session.commit()
    session.refresh(sucursal)
    return sucursal


@router.get("/{sucursal_id}/horario")
def ver_horario(
    sucursal_id: int,
    session: Session = Depends(get_session),
    _user=Depends(get_current_user),
) -> Dict[str, Dict[str, str]]:
    return obtener_sucursal(session, sucursal_id).horario_apertura or {}


@router.put("/{sucursal_id}/horario")
def actualizar_horario(
    sucursal_id: int,
    body: HorarioIn,
    session: Session = Depends(get_session),
    _user=Depends(require_sucursal(Role.admin, Role.comercial)),
) -> Dict[str, Dict[str, str]]:
    """
    Reemplaza el horario completo. Los días sin regla usan "default" y,
    si tampoco hay, 09:00-18:00.
    """
    sucursal = obtener_sucursal(session, sucursal_id)
    # Se asigna un dict nuevo para que la columna JSON se marque como modificada
    sucursal.horario_apertura = _a_json(body)
    session.add(sucursal)
    session.commit()
    session.refresh(sucursal)
    return sucursal.horario_apertura


def _a_json(body: HorarioIn) -> Dict[str, Dict[str, str]]:
    return {dia: franja.model_dump() for dia, franja in body.horario.items()}
