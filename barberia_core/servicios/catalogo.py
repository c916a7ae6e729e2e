# barberia_core/servicios/catalogo.py
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import Producto, Role, Servicio, Usuario
from barberia_core.security import get_current_user, require_role, verificar_sucursal
from barberia_core.servicios.disponibilidad import obtener_sucursal

router = APIRouter()

# Quienes pueden tocar el catálogo de una sucursal
GESTORES = (Role.admin, Role.comercial)


class ServicioCreate(BaseModel):
    sucursal_id: int
    nombre: str
    precio_centavos: int = Field(ge=0)
    duracion_min: int = Field(default=45, gt=0)


class ProductoCreate(BaseModel):
    sucursal_id: int
    nombre: str
    descripcion: Optional[str] = None
    precio_centavos: int = Field(ge=0)


# ---------- Servicios ----------

@router.get("/servicios", response_model=List[Servicio])
def listar_servicios(
    sucursal_id: int,
    session: Session = Depends(get_session),
    _user=Depends(get_current_user),
):
    q = select(Servicio).where(
        Servicio.sucursal_id == sucursal_id,
        Servicio.activo == True,  # noqa: E712
        Servicio.eliminado_en.is_(None),  # type: ignore
    )
    return session.exec(q.order_by(Servicio.nombre.asc())).all()


@router.post("/servicios", response_model=Servicio, status_code=status.HTTP_201_CREATED)
def crear_servicio(
    body: ServicioCreate,
    session: Session = Depends(get_session),
    user: Usuario = Depends(require_role(*GESTORES)),
):
    verificar_sucursal(user, body.sucursal_id)
    obtener_sucursal(session, body.sucursal_id)
    nuevo = Servicio(
        sucursal_id=body.sucursal_id,
        nombre=body.nombre,
        precio_centavos=body.precio_centavos,
        duracion_min=body.duracion_min,
    )
    session.add(nuevo)
    session.commit()
    session.refresh(nuevo)
    return nuevo


@router.delete("/servicios/{servicio_id}", status_code=status.HTTP_204_NO_CONTENT)
def eliminar_servicio(
    servicio_id: int,
    session: Session = Depends(get_session),
    user: Usuario = Depends(require_role(*GESTORES)),
):
    servicio = session.get(Servicio, servicio_id)
    if not servicio or servicio.eliminado_en is not None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Servicio no encontrado",
        )

    verificar_sucursal(user, servicio.sucursal_id)

    # Baja lógica para no perder histórico de órdenes
    servicio.eliminado_en = datetime.utcnow()
    session.add(servicio)
    session.commit()
    return


# ---------- Productos ----------

@router.get("/productos", response_model=List[Producto])
def listar_productos(
    sucursal_id: int,
    session: Session = Depends(get_session),
    _user=Depends(get_current_user),
):
    q = select(Producto).where(
        Producto.sucursal_id == sucursal_id,
        Producto.activo == True,  # noqa: E712
        Producto.eliminado_en.is_(None),  # type: ignore
    )
    return session.exec(q.order_by(Producto.nombre.asc())).all()


@router.post("/productos", response_model=Producto, status_code=status.HTTP_201_CREATED)
def crear_producto(
    body: ProductoCreate,
    session: Session = Depends(get_session),
    user: Usuario = Depends(require_role(*GESTORES)),
):
    verificar_sucursal(user, body.sucursal_id)
    obtener_sucursal(session, body.sucursal_id)
    nuevo = Producto(
        sucursal_id=body.sucursal_id,
        nombre=body.nombre,
        descripcion=body.descripcion,
        precio_centavos=body.precio_centavos,
    )
    session.add(nuevo)
    session.commit()
    session.refresh(nuevo)
    return nuevo


@router.delete("/productos/{producto_id}", status_code=status.HTTP_204_NO_CONTENT)
def eliminar_producto(
    producto_id: int,
    session: Session = Depends(get_session),
    user: Usuario = Depends(require_role(*GESTORES)),
):
    producto = session.get(Producto, producto_id)
    if not producto or producto.eliminado_en is not None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Producto no encontrado",
        )

    verificar_sucursal(user, producto.sucursal_id)
    producto.eliminado_en = datetime.utcnow()
    session.add(producto)
    session.commit()
    return
