# barberia_core/dominio/carrito.py
"""
Carrito local: reservas de servicio en borrador + productos sueltos, y su
conversión a solicitudes de creación de orden.

Reglas:
  - cada borrador de servicio genera exactamente una orden, con los productos
    que se eligieron dentro de ese borrador;
  - los productos sueltos van juntos en a lo sumo una orden sin barbero ni horario;
  - un borrador se identifica por (servicio_id, barbero_id, inicio): volver a
    agregarlo suma cantidades en vez de duplicarlo, y el mismo producto dentro
    de un borrador (o del carrito suelto) también suma cantidades.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from barberia_core.dominio.errores import ErrorDominio, ValidationError

logger = logging.getLogger(__name__)

ClaveBorrador = Tuple[int, int, datetime]


@dataclass
class LineaProducto:
    producto_id: int
    cantidad: int = 1


@dataclass
class BorradorReserva:
    sucursal_id: int
    barbero_id: int
    servicio_id: int
    precio_centavos: int
    inicio: datetime
    fin: datetime
    productos: List[LineaProducto] = field(default_factory=list)

    @property
    def clave(self) -> ClaveBorrador:
        return (self.servicio_id, self.barbero_id, self.inicio)


@dataclass(frozen=True)
class ItemSolicitud:
    tipo: str  # "servicio" | "producto"
    id: int
    cantidad: int = 1


@dataclass
class SolicitudOrden:
    sucursal_id: int
    items: List[ItemSolicitud]
    barbero_id: Optional[int] = None
    inicio: Optional[datetime] = None
    fin: Optional[datetime] = None

    @property
    def tiene_servicio(self) -> bool:
        return any(it.tipo == "servicio" for it in self.items)


@dataclass
class ResultadoEnvio:
    solicitud: SolicitudOrden
    orden_id: Optional[int] = None
    error: Optional[ErrorDominio] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _validar_cantidad(cantidad: int) -> None:
    if cantidad < 1:
        raise ValidationError("La cantidad debe ser >= 1")


def sumar_productos(lineas: Iterable[LineaProducto]) -> List[LineaProducto]:
    """Junta líneas del mismo producto sumando cantidades (respeta el orden)."""
    acumulado: Dict[int, int] = {}
    for ln in lineas:
        _validar_cantidad(ln.cantidad)
        acumulado[ln.producto_id] = acumulado.get(ln.producto_id, 0) + ln.cantidad
    return [LineaProducto(producto_id=pid, cantidad=c) for pid, c in acumulado.items()]


def merge_drafts(borradores: Iterable[BorradorReserva]) -> List[BorradorReserva]:
    por_clave: Dict[ClaveBorrador, BorradorReserva] = {}
    for b in borradores:
        existente = por_clave.get(b.clave)
        if existente is None:
            por_clave[b.clave] = BorradorReserva(
                sucursal_id=b.sucursal_id,
                barbero_id=b.barbero_id,
                servicio_id=b.servicio_id,
                precio_centavos=b.precio_centavos,
                inicio=b.inicio,
                fin=b.fin,
                productos=sumar_productos(b.productos),
            )
        else:
            existente.productos = sumar_productos(existente.productos + list(b.productos))
    return list(por_clave.values())


def reconcile(
    borradores: Iterable[BorradorReserva],
    productos_sueltos: Iterable[LineaProducto],
    sucursal_id: Optional[int] = None,
) -> List[SolicitudOrden]:
    """
    Arma las solicitudes de orden. Lista vacía = nada para confirmar.
    Los productos sueltos usan `sucursal_id`, o la del primer borrador.
    """
    reservas = merge_drafts(borradores)
    sueltos = sumar_productos(productos_sueltos)

    solicitudes: List[SolicitudOrden] = []
    for b in reservas:
        items = [ItemSolicitud(tipo="servicio", id=b.servicio_id, cantidad=1)]
        items += [
            ItemSolicitud(tipo="producto", id=p.producto_id, cantidad=p.cantidad)
            for p in b.productos
        ]
        solicitudes.append(
            SolicitudOrden(
                sucursal_id=b.sucursal_id,
                items=items,
                barbero_id=b.barbero_id,
                inicio=b.inicio,
                fin=b.fin,
            )
        )

    if sueltos:
        sucursal = sucursal_id if sucursal_id is not None else (
            reservas[0].sucursal_id if reservas else None
        )
        if sucursal is None:
            raise ValidationError("Falta la sucursal para los productos sueltos")
        solicitudes.append(
            SolicitudOrden(
                sucursal_id=sucursal,
                items=[
                    ItemSolicitud(tipo="producto", id=p.producto_id, cantidad=p.cantidad)
                    for p in sueltos
                ],
            )
        )

    return solicitudes


# =========================
# Sesión de carrito
# =========================

class AlmacenCarrito(Protocol):
    def cargar(self) -> Optional[Dict[str, Any]]: ...

    def guardar(self, registros: Optional[Dict[str, Any]]) -> None: ...


class AlmacenMemoria:
    """Almacén en memoria; sirve para tests y para procesos sin estado."""

    def __init__(self, registros: Optional[Dict[str, Any]] = None) -> None:
        self.registros = registros

    def cargar(self) -> Optional[Dict[str, Any]]:
        return self.registros

    def guardar(self, registros: Optional[Dict[str, Any]]) -> None:
        self.registros = registros


class CartSession:
    def __init__(
        self,
        sucursal_id: Optional[int] = None,
        servicios: Optional[List[BorradorReserva]] = None,
        productos: Optional[List[LineaProducto]] = None,
    ) -> None:
        self.sucursal_id = sucursal_id
        self.servicios: List[BorradorReserva] = merge_drafts(servicios or [])
        self.productos: List[LineaProducto] = sumar_productos(productos or [])

    @property
    def vacio(self) -> bool:
        return not self.servicios and not self.productos

    def agregar_servicio(self, borrador: BorradorReserva) -> BorradorReserva:
        self.servicios = merge_drafts(self.servicios + [borrador])
        if self.sucursal_id is None:
            self.sucursal_id = borrador.sucursal_id
        return self._buscar(borrador.clave)

    def agregar_producto(
        self,
        producto_id: int,
        cantidad: int = 1,
        clave: Optional[ClaveBorrador] = None,
    ) -> None:
        """Con `clave` el producto queda atado a ese servicio; si no, es suelto."""
        linea = LineaProducto(producto_id=producto_id, cantidad=cantidad)
        if clave is None:
            self.productos = sumar_productos(self.productos + [linea])
            return
        borrador = self._buscar(clave)
        borrador.productos = sumar_productos(borrador.productos + [linea])

    def quitar_servicio(self, clave: ClaveBorrador) -> None:
        self.servicios = [b for b in self.servicios if b.clave != clave]

    def limpiar(self) -> None:
        self.servicios = []
        self.productos = []

    def reconcile(self) -> List[SolicitudOrden]:
        return reconcile(self.servicios, self.productos, sucursal_id=self.sucursal_id)

    def _buscar(self, clave: ClaveBorrador) -> BorradorReserva:
        for b in self.servicios:
            if b.clave == clave:
                return b
        raise ValidationError("El servicio no está en el carrito")

    # ---------- registros planos ----------

    def to_records(self) -> Dict[str, Any]:
        return {
            "sucursal_id": self.sucursal_id,
            "servicios": [
                {
                    "sucursal_id": b.sucursal_id,
                    "barbero_id": b.barbero_id,
                    "servicio_id": b.servicio_id,
                    "precio_centavos": b.precio_centavos,
                    "inicio": b.inicio.isoformat(),
                    "fin": b.fin.isoformat(),
                    "productos": [
                        {"producto_id": p.producto_id, "cantidad": p.cantidad}
                        for p in b.productos
                    ],
                }
                for b in self.servicios
            ],
            "productos": [
                {"producto_id": p.producto_id, "cantidad": p.cantidad}
                for p in self.productos
            ],
        }

    @classmethod
    def from_records(cls, registros: Optional[Dict[str, Any]]) -> "CartSession":
        registros = registros or {}
        try:
            servicios = [
                BorradorReserva(
                    sucursal_id=int(s["sucursal_id"]),
                    barbero_id=int(s["barbero_id"]),
                    servicio_id=int(s["servicio_id"]),
                    precio_centavos=int(s.get("precio_centavos") or 0),
                    inicio=_parse_instante(s["inicio"]),
                    fin=_parse_instante(s["fin"]),
                    productos=[_linea(p) for p in s.get("productos") or []],
                )
                for s in registros.get("servicios") or []
            ]
            productos = [_linea(p) for p in registros.get("productos") or []]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Carrito mal formado: {exc}") from exc

        return cls(
            sucursal_id=registros.get("sucursal_id"),
            servicios=servicios,
            productos=productos,
        )

    @classmethod
    def load(cls, almacen: AlmacenCarrito) -> "CartSession":
        return cls.from_records(almacen.cargar())

    def save(self, almacen: AlmacenCarrito) -> None:
        almacen.guardar(None if self.vacio else self.to_records())


def _parse_instante(x: Any) -> datetime:
    if isinstance(x, datetime):
        return x
    return datetime.fromisoformat(str(x))


def _linea(p: Dict[str, Any]) -> LineaProducto:
    return LineaProducto(producto_id=int(p["producto_id"]), cantidad=int(p.get("cantidad", 1)))


def checkout(
    carrito: CartSession,
    enviar: Callable[[SolicitudOrden], int],
    almacen: Optional[AlmacenCarrito] = None,
) -> List[ResultadoEnvio]:
    """
    Envía una solicitud por orden. El carrito se vacía apenas se arman las
    solicitudes, salga bien o mal cada envío: las órdenes ya creadas no se
    deshacen si una posterior falla.
    """
    solicitudes = carrito.reconcile()
    carrito.limpiar()
    if almacen is not None:
        carrito.save(almacen)

    resultados: List[ResultadoEnvio] = []
    for sol in solicitudes:
        try:
            orden_id = enviar(sol)
        except ErrorDominio as exc:
            logger.warning("Solicitud de orden rechazada (%s): %s", exc.codigo, exc.mensaje)
            resultados.append(ResultadoEnvio(solicitud=sol, error=exc))
            continue
        logger.info("Orden %s creada desde el carrito", orden_id)
        resultados.append(ResultadoEnvio(solicitud=sol, orden_id=orden_id))

    return resultados
