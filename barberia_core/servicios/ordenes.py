# barberia_core/servicios/ordenes.py
from __future__ import annotations

import logging
from typing import List, Literal, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from barberia_core.config import COMISION_BP_DEFAULT
from barberia_core.db.conexion import get_session
from barberia_core.db.modelos import (
    ESTADOS_TERMINALES,
    ROLES_PERSONAL,
    Cita,
    EstadoOrden,
    ItemOrden,
    MovimientoBilletera,
    Orden,
    Producto,
    Role,
    Servicio,
    TarjetaFidelidad,
    TipoItem,
    TipoMovimiento,
    Usuario,
)
from barberia_core.dominio.errores import (
    AuthorizationError,
    ConflictError,
    ErrorDominio,
    NotFoundError,
    StateError,
    ValidationError,
)
from barberia_core.dominio.intervalos import Intervalo, overlaps
from barberia_core.dominio.liquidacion import settle
from barberia_core.security import get_current_user, require_role, verificar_sucursal
from barberia_core.servicios.disponibilidad import cargar_ocupados, obtener_sucursal
from barberia_core.servicios.notificaciones import encolar_notificacion

logger = logging.getLogger(__name__)

router = APIRouter()

MSG_NO_DISPONIBLE = "Ese horario ya no está disponible, elegí otro"


# --------- Esquemas de entrada ---------

class OrdenItemCreate(BaseModel):
    tipo: Literal["servicio", "producto"]
    id: int
    cantidad: int = Field(default=1, ge=1)


class OrdenCreate(BaseModel):
    sucursal_id: int
    barbero_id: Optional[int] = None
    inicio: Optional[datetime] = None
    fin: Optional[datetime] = None
    notas: Optional[str] = None
    cliente_id: Optional[int] = None
    items: List[OrdenItemCreate] = []

    @field_validator("inicio", "fin")
    @classmethod
    def _hora_local(cls, v: Optional[datetime]) -> Optional[datetime]:
        # La agenda trabaja en hora de pared de la sucursal
        if v is not None and v.tzinfo is not None:
            raise ValueError("usar hora local de la sucursal, sin zona horaria")
        return v


# --------- Esquemas de salida ---------

class OrdenCreada(BaseModel):
    orden_id: int


class ItemOrdenOut(BaseModel):
    tipo: TipoItem
    referencia_id: int
    cantidad: int
    precio_unitario_centavos: int
    subtotal_centavos: int


class OrdenOut(BaseModel):
    id: int
    sucursal_id: int
    cliente_id: int
    barbero_id: Optional[int]
    inicio: Optional[datetime]
    fin: Optional[datetime]
    estado: EstadoOrden
    notas: Optional[str]
    total_centavos: int
    creado_en: datetime
    completada_en: Optional[datetime]
    items: List[ItemOrdenOut] = []


class FidelidadDelta(BaseModel):
    puntos: int
    sellos: int


class CompletarOut(BaseModel):
    orden_id: int
    estado: EstadoOrden
    ganancia_centavos: int
    fidelidad: FidelidadDelta


# --------- Helpers ---------

def _resolver_cliente(session: Session, usuario: Usuario, body: OrdenCreate) -> int:
    if usuario.rol == Role.cliente:
        if body.cliente_id is not None and body.cliente_id != usuario.id:
            raise AuthorizationError("Un cliente solo puede reservar para sí mismo")
        return usuario.id

    if body.cliente_id is None:
        raise ValidationError("Falta cliente_id")
    verificar_sucursal(usuario, body.sucursal_id)

    cliente = session.get(Usuario, body.cliente_id)
    if not cliente or not cliente.activo:
        raise NotFoundError(f"Cliente inexistente (id={body.cliente_id})")
    return cliente.id


def _precio_item(session: Session, sucursal_id: int, item: OrdenItemCreate) -> int:
    modelo = Servicio if item.tipo == "servicio" else Producto
    ref = session.get(modelo, item.id)
    if (
        not ref
        or ref.sucursal_id != sucursal_id
        or not ref.activo
        or ref.eliminado_en is not None
    ):
        raise NotFoundError(
            f"{item.tipo.capitalize()} inválido o inactivo (id={item.id})"
        )
    return ref.precio_centavos


def consulta_barbero_bloqueado(barbero_id: int):
    # SELECT ... FOR UPDATE: las reservas del mismo barbero se verifican de a una
    return select(Usuario).where(Usuario.id == barbero_id).with_for_update()


def _bloquear_barbero(session: Session, sucursal_id: int, barbero_id: int) -> Usuario:
    """
    Valida el barbero y retiene el lock de su fila hasta el commit, así la
    verificación de agenda y el insert no se intercalan con otra reserva.
    """
    barbero = session.exec(consulta_barbero_bloqueado(barbero_id)).first()
    if (
        not barbero
        or not barbero.activo
        or barbero.rol != Role.barbero
        or barbero.sucursal_id != sucursal_id
    ):
        raise NotFoundError(f"Barbero inválido para la sucursal (id={barbero_id})")
    return barbero


def _orden_o_404(session: Session, orden_id: int) -> Orden:
    orden = session.get(Orden, orden_id)
    if not orden:
        raise NotFoundError("Orden no encontrada")
    return orden


def _puede_operar(usuario: Usuario, orden: Orden) -> bool:
    if usuario.rol == Role.admin:
        return True
    if usuario.rol == Role.barbero:
        return orden.barbero_id == usuario.id
    if usuario.rol == Role.comercial:
        return usuario.sucursal_id == orden.sucursal_id
    return False


def _items_de(session: Session, orden_id: int) -> List[ItemOrden]:
    return list(session.exec(
        select(ItemOrden).where(ItemOrden.orden_id == orden_id).order_by(ItemOrden.id)
    ).all())


def _sincronizar_cita(session: Session, orden: Orden) -> None:
    cita = session.exec(select(Cita).where(Cita.orden_id == orden.id)).first()
    if cita:
        cita.estado = orden.estado
        session.add(cita)


def _a_salida(orden: Orden, items: List[ItemOrden]) -> OrdenOut:
    return OrdenOut(
        id=orden.id,
        sucursal_id=orden.sucursal_id,
        cliente_id=orden.cliente_id,
        barbero_id=orden.barbero_id,
        inicio=orden.inicio,
        fin=orden.fin,
        estado=orden.estado,
        notas=orden.notas,
        total_centavos=orden.total_centavos,
        creado_en=orden.creado_en,
        completada_en=orden.completada_en,
        items=[
            ItemOrdenOut(
                tipo=it.tipo,
                referencia_id=it.referencia_id,
                cantidad=it.cantidad,
                precio_unitario_centavos=it.precio_unitario_centavos,
                subtotal_centavos=it.subtotal_centavos,
            )
            for it in items
        ],
    )


# --------- Operaciones ---------

def crear_orden(session: Session, usuario: Usuario, body: OrdenCreate) -> Orden:
    """
    Crea la orden con sus items y, si lleva servicio, su cita.
    Todo o nada: ante cualquier rechazo se hace rollback y no queda orden.
    La disponibilidad del barbero se vuelve a verificar acá; lo que calculó
    el cliente es solo orientativo.
    """
    if not body.items:
        raise ValidationError("La orden debe tener al menos un item")

    tiene_servicio = any(it.tipo == "servicio" for it in body.items)
    barbero_id = body.barbero_id if tiene_servicio else None
    inicio = body.inicio if tiene_servicio else None
    fin = body.fin if tiene_servicio else None

    if tiene_servicio:
        if barbero_id is None or inicio is None or fin is None:
            raise ValidationError("Faltan barbero_id, inicio o fin")
        if inicio >= fin:
            raise ValidationError("inicio debe ser anterior a fin")

    try:
        obtener_sucursal(session, body.sucursal_id)
        cliente_id = _resolver_cliente(session, usuario, body)

        precios = [_precio_item(session, body.sucursal_id, it) for it in body.items]

        if tiene_servicio:
            _bloquear_barbero(session, body.sucursal_id, barbero_id)
            pedido = Intervalo(inicio, fin)
            ocupados = cargar_ocupados(session, [barbero_id], inicio, fin)
            if any(overlaps(pedido, o) for o in ocupados[barbero_id]):
                raise ConflictError(MSG_NO_DISPONIBLE)

        orden = Orden(
            sucursal_id=body.sucursal_id,
            cliente_id=cliente_id,
            barbero_id=barbero_id,
            inicio=inicio,
            fin=fin,
            notas=body.notas,
            total_centavos=0,
        )
        session.add(orden)
        session.flush()  # para tener orden.id

        total = 0
        for item_in, precio in zip(body.items, precios):
            subtotal = precio * item_in.cantidad
            total += subtotal
            session.add(
                ItemOrden(
                    orden_id=orden.id,
                    tipo=TipoItem(item_in.tipo),
                    referencia_id=item_in.id,
                    cantidad=item_in.cantidad,
                    precio_unitario_centavos=precio,
                    subtotal_centavos=subtotal,
                )
            )

        if tiene_servicio:
            primer_servicio = next(it for it in body.items if it.tipo == "servicio")
            session.add(
                Cita(
                    orden_id=orden.id,
                    barbero_id=barbero_id,
                    cliente_id=cliente_id,
                    servicio_id=primer_servicio.id,
                    inicio=inicio,
                    fin=fin,
                )
            )

        orden.total_centavos = total
        session.add(orden)
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("Choque de reserva: barbero %s a las %s", barbero_id, inicio)
        raise ConflictError(MSG_NO_DISPONIBLE)
    except ErrorDominio as exc:
        session.rollback()
        logger.info("Orden rechazada (%s): %s", exc.codigo, exc.mensaje)
        raise
    except Exception:
        session.rollback()
        raise

    session.refresh(orden)
    logger.info("Orden %s creada (sucursal=%s, barbero=%s)", orden.id, orden.sucursal_id, barbero_id)

    if barbero_id is not None:
        encolar_notificacion(
            session,
            barbero_id,
            "Nueva reserva",
            f"Tenés una reserva el {inicio:%d/%m %H:%M}",
            {"orden_id": orden.id},
        )
    return orden


def completar_orden(session: Session, usuario: Usuario, orden_id: int) -> CompletarOut:
    """
    Marca la orden como completada y la liquida en la misma transacción:
    crédito en la billetera del barbero y acumulación de fidelidad.
    Repetir sobre una orden ya completada devuelve el mismo resultado sin
    volver a acreditar.

    El paso a completada es un UPDATE condicional sobre completada_en: si
    dos pedidos llegan juntos, solo uno modifica la fila y liquida; el otro
    ve 0 filas y devuelve lo que quedó guardado.
    """
    orden = _orden_o_404(session, orden_id)
    if not _puede_operar(usuario, orden):
        raise AuthorizationError("Sin permisos sobre esta orden")

    if orden.completada_en is not None:
        logger.info("Orden %s ya estaba completada, se devuelve la liquidación guardada", orden.id)
        return _resultado_completar(orden)
    if orden.estado == EstadoOrden.cancelada:
        raise StateError("No se puede completar una orden cancelada")

    comision_bp = COMISION_BP_DEFAULT
    if orden.barbero_id is not None:
        barbero = session.get(Usuario, orden.barbero_id)
        if barbero is not None and barbero.comision_bp is not None:
            comision_bp = barbero.comision_bp

    liq = settle(_items_de(session, orden.id), comision_bp)
    ganancia = liq.ganancia_centavos if orden.barbero_id is not None else 0

    aplicada = False
    try:
        marcada = session.execute(
            update(Orden)
            .where(
                Orden.id == orden.id,
                Orden.completada_en.is_(None),  # type: ignore
                Orden.estado != EstadoOrden.cancelada,
            )
            .values(
                estado=EstadoOrden.completada,
                completada_en=datetime.utcnow(),
                ganancia_centavos=ganancia,
                puntos_otorgados=liq.puntos,
                sellos_otorgados=liq.sellos,
            )
            .execution_options(synchronize_session=False)
        )
        if marcada.rowcount != 1:
            session.rollback()
        else:
            _liquidar(session, orden, ganancia, liq.puntos, liq.sellos)
            session.commit()
            aplicada = True
    except IntegrityError:
        # la ganancia de esta orden ya estaba acreditada
        session.rollback()
    except Exception:
        session.rollback()
        raise

    session.refresh(orden)
    if not aplicada:
        if orden.estado == EstadoOrden.cancelada:
            raise StateError("No se puede completar una orden cancelada")
        if orden.completada_en is None:
            logger.warning("Orden %s tiene una ganancia acreditada sin estar completada", orden.id)
            raise StateError("La orden ya tiene una ganancia acreditada")
        logger.info("Orden %s completada por otro pedido, se devuelve la liquidación guardada", orden.id)
        return _resultado_completar(orden)

    logger.info(
        "Orden %s completada: ganancia=%s puntos=%s sellos=%s",
        orden.id, orden.ganancia_centavos, liq.puntos, liq.sellos,
    )
    encolar_notificacion(
        session,
        orden.cliente_id,
        "Servicio completado",
        f"Sumaste {liq.puntos} puntos y {liq.sellos} sellos",
        {"orden_id": orden.id},
    )
    return _resultado_completar(orden)


def _liquidar(session: Session, orden: Orden, ganancia: int, puntos: int, sellos: int) -> None:
    """
    Escrituras de la liquidación, dentro de la transacción que marcó la orden.
    """
    session.refresh(orden)
    _sincronizar_cita(session, orden)

    if orden.barbero_id is not None and ganancia > 0:
        session.add(
            MovimientoBilletera(
                barbero_id=orden.barbero_id,
                monto_centavos=ganancia,
                orden_id=orden.id,
                tipo=TipoMovimiento.ganancia,
            )
        )

    tarjeta = session.exec(
        select(TarjetaFidelidad).where(
            TarjetaFidelidad.cliente_id == orden.cliente_id,
            TarjetaFidelidad.sucursal_id == orden.sucursal_id,
        )
    ).first()
    if tarjeta is None:
        tarjeta = TarjetaFidelidad(
            cliente_id=orden.cliente_id,
            sucursal_id=orden.sucursal_id,
        )
    tarjeta.puntos += puntos
    tarjeta.sellos += sellos
    session.add(tarjeta)


def _resultado_completar(orden: Orden) -> CompletarOut:
    return CompletarOut(
        orden_id=orden.id,
        estado=orden.estado,
        ganancia_centavos=orden.ganancia_centavos or 0,
        fidelidad=FidelidadDelta(
            puntos=orden.puntos_otorgados or 0,
            sellos=orden.sellos_otorgados or 0,
        ),
    )


def _cambiar_estado(session: Session, orden: Orden, nuevo: EstadoOrden) -> Orden:
    orden.estado = nuevo
    session.add(orden)
    _sincronizar_cita(session, orden)
    session.commit()
    session.refresh(orden)
    logger.info("Orden %s pasa a %s", orden.id, nuevo.value)
    return orden


# --------- Endpoints ---------

@router.post("/", response_model=OrdenCreada, status_code=status.HTTP_201_CREATED)
def crear_orden_endpoint(
    body: OrdenCreate,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(get_current_user),
):
    orden = crear_orden(session, usuario, body)
    return OrdenCreada(orden_id=orden.id)


@router.get("/", response_model=List[OrdenOut])
def listar_ordenes(
    estado: Optional[EstadoOrden] = None,
    sucursal_id: Optional[int] = None,
    desde: Optional[datetime] = None,
    hasta: Optional[datetime] = None,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(get_current_user),
):
    """
    - cliente: sus órdenes
    - barbero: las que tiene asignadas
    - comercial: las de su sucursal
    - admin: todas (opcionalmente filtradas por sucursal)

    Con desde/hasta funciona como agenda: solo órdenes con horario que se
    solapan con [desde, hasta), en orden cronológico.
    """
    if any(d is not None and d.tzinfo is not None for d in (desde, hasta)):
        raise ValidationError("usar hora local de la sucursal, sin zona horaria")
    if desde is not None and hasta is not None and desde >= hasta:
        raise ValidationError("desde debe ser anterior a hasta")

    q = select(Orden)
    if usuario.rol == Role.cliente:
        q = q.where(Orden.cliente_id == usuario.id)
    elif usuario.rol == Role.barbero:
        q = q.where(Orden.barbero_id == usuario.id)
    elif usuario.rol == Role.comercial:
        q = q.where(Orden.sucursal_id == usuario.sucursal_id)

    if sucursal_id is not None:
        q = q.where(Orden.sucursal_id == sucursal_id)
    if estado is not None:
        q = q.where(Orden.estado == estado)

    if desde is None and hasta is None:
        q = q.order_by(Orden.inicio.desc(), Orden.id.desc())
    else:
        if desde is not None:
            q = q.where(Orden.fin > desde)
        if hasta is not None:
            q = q.where(Orden.inicio < hasta)
        q = q.order_by(Orden.inicio.asc(), Orden.id.asc())
    return [_a_salida(o, []) for o in session.exec(q).all()]


@router.get("/{orden_id}", response_model=OrdenOut)
def obtener_orden(
    orden_id: int,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(get_current_user),
):
    orden = _orden_o_404(session, orden_id)
    if usuario.rol == Role.cliente:
        if orden.cliente_id != usuario.id:
            raise AuthorizationError("Sin permisos sobre esta orden")
    elif not _puede_operar(usuario, orden):
        raise AuthorizationError("Sin permisos sobre esta orden")
    return _a_salida(orden, _items_de(session, orden.id))


@router.post("/{orden_id}/confirmar", response_model=OrdenOut)
def confirmar_orden(
    orden_id: int,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(require_role(*ROLES_PERSONAL)),
):
    orden = _orden_o_404(session, orden_id)
    if not _puede_operar(usuario, orden):
        raise AuthorizationError("Sin permisos sobre esta orden")
    if orden.estado != EstadoOrden.pendiente:
        raise StateError(f"Solo se confirman órdenes pendientes (estado={orden.estado.value})")
    orden = _cambiar_estado(session, orden, EstadoOrden.confirmada)
    return _a_salida(orden, _items_de(session, orden.id))


@router.post("/{orden_id}/cancelar", response_model=OrdenOut)
def cancelar_orden(
    orden_id: int,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(get_current_user),
):
    orden = _orden_o_404(session, orden_id)
    propia = usuario.rol == Role.cliente and orden.cliente_id == usuario.id
    if not propia and not _puede_operar(usuario, orden):
        raise AuthorizationError("Sin permisos sobre esta orden")
    if orden.estado in ESTADOS_TERMINALES:
        raise StateError(f"La orden ya está {orden.estado.value}")
    orden = _cambiar_estado(session, orden, EstadoOrden.cancelada)
    return _a_salida(orden, _items_de(session, orden.id))


@router.post("/{orden_id}/completar", response_model=CompletarOut)
def completar_orden_endpoint(
    orden_id: int,
    session: Session = Depends(get_session),
    usuario: Usuario = Depends(require_role(*ROLES_PERSONAL)),
) -> CompletarOut:
    return completar_orden(session, usuario, orden_id)
