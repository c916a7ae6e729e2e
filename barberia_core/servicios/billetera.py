# barberia_core/servicios/billetera.py
from __future__ import annotations

import logging
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlmodel import Session, select

from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import (
    MovimientoBilletera,
    Role,
    TipoMovimiento,
    Usuario,
)
from barberia_core.dominio.errores import AuthorizationError, ValidationError
from barberia_core.security import require_role

logger = logging.getLogger(__name__)

router = APIRouter()


class MovimientoOut(BaseModel):
    id: int
    monto_centavos: int
    tipo: TipoMovimiento
    orden_id: Optional[int]
    creado_en: datetime


class BilleteraOut(BaseModel):
    barbero_id: int
    saldo_centavos: int
    movimientos: List[MovimientoOut]


class RetiroCreate(BaseModel):
    monto_centavos: int = Field(gt=0)


def saldo_de(session: Session, barbero_id: int) -> int:
    total = session.exec(
        select(func.coalesce(func.sum(MovimientoBilletera.monto_centavos), 0)).where(
            MovimientoBilletera.barbero_id == barbero_id
        )
    ).one()
    return int(total)


def _barbero_objetivo(usuario: Usuario, barbero_id: Optional[int]) -> int:
    if usuario.rol == Role.barbero:
        if barbero_id is not None and barbero_id != usuario.id:
            raise AuthorizationError("Solo podés ver tu propia billetera")
        return usuario.id
    if barbero_id is None:
        raise ValidationError("Falta barbero_id")
    return barbero_id


@router.get("/", response_model=BilleteraOut)
def ver_billetera(
    barbero_id: Optional[int] = None,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(require_role(Role.barbero, Role.admin)),
):
    objetivo = _barbero_objetivo(usuario, barbero_id)
    movimientos = session.exec(
        select(MovimientoBilletera)
        .where(MovimientoBilletera.barbero_id == objetivo)
        .order_by(MovimientoBilletera.creado_en.desc(), MovimientoBilletera.id.desc())
    ).all()
    return BilleteraOut(
        barbero_id=objetivo,
        saldo_centavos=saldo_de(session, objetivo),
        movimientos=[
            MovimientoOut(
                id=m.id,
                monto_centavos=m.monto_centavos,
                tipo=m.tipo,
                orden_id=m.orden_id,
                creado_en=m.creado_en,
            )
            for m in movimientos
        ],
    )


@router.post("/retiros", response_model=MovimientoOut, status_code=status.HTTP_201_CREATED)
def solicitar_retiro(
    body: RetiroCreate,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(require_role(Role.barbero)),
):
    """
    El retiro es un movimiento negativo más; el saldo nunca se pisa.
    """
    saldo = saldo_de(session, usuario.id)
    if body.monto_centavos > saldo:
        raise ValidationError("Saldo insuficiente para el retiro")

    mov = MovimientoBilletera(
        barbero_id=usuario.id,
        monto_centavos=-body.monto_centavos,
        tipo=TipoMovimiento.retiro,
    )
    session.add(mov)
    session.commit()
    session.refresh(mov)
    logger.info("Retiro de %s centavos para barbero %s", body.monto_centavos, usuario.id)
    return MovimientoOut(
        id=mov.id,
        monto_centavos=mov.monto_centavos,
        tipo=mov.tipo,
        orden_id=mov.orden_id,
        creado_en=mov.creado_en,
    )
