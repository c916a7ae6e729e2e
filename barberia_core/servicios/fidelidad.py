# barberia_core/servicios/fidelidad.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import Role, TarjetaFidelidad, Usuario
from barberia_core.dominio.errores import ValidationError
from barberia_core.security import get_current_user

router = APIRouter()


@router.get("/", response_model=List[TarjetaFidelidad])
def ver_tarjetas(
    sucursal_id: Optional[int] = None,
    cliente_id: Optional[int] = None,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(get_current_user),
):
    """
    Tarjetas de fidelidad del cliente (propias, o de `cliente_id` para personal).
    """
    if usuario.rol == Role.cliente:
        cliente_id = usuario.id
    elif cliente_id is None:
        raise ValidationError("Falta cliente_id")

    q = select(TarjetaFidelidad).where(TarjetaFidelidad.cliente_id == cliente_id)
    if sucursal_id is not None:
        q = q.where(TarjetaFidelidad.sucursal_id == sucursal_id)
    return session.exec(q.order_by(TarjetaFidelidad.sucursal_id.asc())).all()
