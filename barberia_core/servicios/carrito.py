# barberia_core/servicios/carrito.py
from __future__ import annotations

from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import Usuario
from barberia_core.dominio.carrito import CartSession, SolicitudOrden, checkout
from barberia_core.security import get_current_user
from barberia_core.servicios.ordenes import OrdenCreate, OrdenItemCreate, crear_orden

router = APIRouter()


# --------- Esquemas de entrada ---------
# Mismo formato que el carrito guardado del lado del cliente

class LineaProductoIn(BaseModel):
    producto_id: int
    cantidad: int = Field(default=1, ge=1)


class BorradorIn(BaseModel):
    sucursal_id: int
    barbero_id: int
    servicio_id: int
    precio_centavos: int = 0
    inicio: datetime
    fin: datetime
    productos: List[LineaProductoIn] = []

    @field_validator("inicio", "fin")
    @classmethod
    def _hora_local(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            raise ValueError("usar hora local de la sucursal, sin zona horaria")
        return v


class CarritoIn(BaseModel):
    sucursal_id: Optional[int] = None
    servicios: List[BorradorIn] = []
    productos: List[LineaProductoIn] = []
    # Solo para personal que confirma en nombre de un cliente
    cliente_id: Optional[int] = None
    notas: Optional[str] = None


# --------- Esquemas de salida ---------

class ResultadoOut(BaseModel):
    ok: bool
    orden_id: Optional[int] = None
    barbero_id: Optional[int] = None
    inicio: Optional[datetime] = None
    error: Optional[str] = None
    codigo: Optional[str] = None


class CheckoutOut(BaseModel):
    resultados: List[ResultadoOut]
    mensaje: str


@router.post("/confirmar", response_model=CheckoutOut)
def confirmar_carrito(
    body: CarritoIn,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(get_current_user),
) -> CheckoutOut:
    """
    Concilia el carrito y crea una orden por servicio (más una para los
    productos sueltos). Cada solicitud se envía por separado: si una falla,
    las demás se intentan igual y las ya creadas quedan. El mensaje de cada
    rechazo se devuelve tal cual.
    """
    carrito = CartSession.from_records(body.model_dump(exclude={"cliente_id", "notas"}))
    if carrito.vacio:
        return CheckoutOut(resultados=[], mensaje="Nada para confirmar")

    def enviar(sol: SolicitudOrden) -> int:
        orden = crear_orden(
            session,
            usuario,
            OrdenCreate(
                sucursal_id=sol.sucursal_id,
                barbero_id=sol.barbero_id,
                inicio=sol.inicio,
                fin=sol.fin,
                notas=body.notas,
                cliente_id=body.cliente_id,
                items=[
                    OrdenItemCreate(tipo=it.tipo, id=it.id, cantidad=it.cantidad)
                    for it in sol.items
                ],
            ),
        )
        return orden.id

    resultados = checkout(carrito, enviar)

    salida = [
        ResultadoOut(
            ok=r.ok,
            orden_id=r.orden_id,
            barbero_id=r.solicitud.barbero_id,
            inicio=r.solicitud.inicio,
            error=r.error.mensaje if r.error else None,
            codigo=r.error.codigo if r.error else None,
        )
        for r in resultados
    ]
    creadas = sum(1 for r in resultados if r.ok)
    return CheckoutOut(
        resultados=salida,
        mensaje=f"{creadas} de {len(resultados)} órdenes creadas",
    )
