# barberia_core/db/modelos.py
from __future__ import annotations

from typing import Any, Dict, Optional
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Index, text
from sqlmodel import SQLModel, Field


def _fecha_local(nullable: bool = True, index: bool = False) -> Column:
    # Hora de pared de la sucursal, sin zona horaria
    return Column(DateTime(timezone=False), nullable=nullable, index=index)


# =========================
# Enums base
# =========================

class Role(str, Enum):
    """
    Roles de usuario. Todos menos `cliente` son personal de la sucursal.
    """
    cliente = "cliente"
    barbero = "barbero"
    comercial = "comercial"
    admin = "admin"


ROLES_PERSONAL = (Role.barbero, Role.comercial, Role.admin)


class EstadoOrden(str, Enum):
    """
    pendiente -> confirmada -> completada | cancelada
    """
    pendiente = "pendiente"
    confirmada = "confirmada"
    completada = "completada"
    cancelada = "cancelada"


ESTADOS_TERMINALES = (EstadoOrden.completada, EstadoOrden.cancelada)


class TipoItem(str, Enum):
    servicio = "servicio"
    producto = "producto"


class TipoMovimiento(str, Enum):
    ganancia = "ganancia"
    retiro = "retiro"
    ajuste = "ajuste"


# =========================
# Sucursales y usuarios
# =========================

class Sucursal(SQLModel, table=True):
    """
    Sucursal de la barbería (tenant).
    """
    __tablename__ = "sucursales"

    id: Optional[int] = Field(default=None, primary_key=True)
    nombre: str = Field(index=True)
    direccion: Optional[str] = None
    # {"0".."6" | "default": {"inicio": "HH:MM", "fin": "HH:MM"}}, 0 = domingo
    horario_apertura: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON),
    )
    activo: bool = Field(default=True)


class Usuario(SQLModel, table=True):
    """
    Usuario del sistema: clientes y personal.
    """
    __tablename__ = "usuarios"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    nombre: Optional[str] = Field(
        default=None,
        description="Nombre visible del usuario"
    )
    password_hash: str = Field(description="Hash de la contraseña")
    rol: Role = Field(default=Role.cliente)
    sucursal_id: Optional[int] = Field(
        default=None,
        foreign_key="sucursales.id",
        index=True,
        description="Sucursal del personal (null para clientes)"
    )
    comision_bp: Optional[int] = Field(
        default=None,
        ge=0,
        le=10000,
        description="Comisión propia en puntos básicos; null usa la default"
    )
    activo: bool = Field(default=True)


# =========================
# Catálogo
# =========================

class Servicio(SQLModel, table=True):
    __tablename__ = "servicios"

    id: Optional[int] = Field(default=None, primary_key=True)
    sucursal_id: int = Field(foreign_key="sucursales.id", index=True)
    nombre: str
    precio_centavos: int = Field(ge=0)
    duracion_min: int = Field(default=45, gt=0, description="Duración en minutos")
    activo: bool = Field(default=True)
    eliminado_en: Optional[datetime] = Field(
        default=None,
        sa_column=_fecha_local(),
        description="Baja lógica; no nulo = eliminado"
    )


class Producto(SQLModel, table=True):
    __tablename__ = "productos"

    id: Optional[int] = Field(default=None, primary_key=True)
    sucursal_id: int = Field(foreign_key="sucursales.id", index=True)
    nombre: str = Field(index=True)
    descripcion: Optional[str] = None
    precio_centavos: int = Field(ge=0)
    activo: bool = Field(default=True)
    eliminado_en: Optional[datetime] = Field(default=None, sa_column=_fecha_local())


# =========================
# Órdenes
# =========================

class Orden(SQLModel, table=True):
    """
    Encabezado de una orden. barbero_id/inicio/fin solo en órdenes con servicio.
    """
    __tablename__ = "ordenes"
    __table_args__ = (
        # Un barbero no puede tener dos órdenes vivas con el mismo inicio
        Index(
            "ux_ordenes_barbero_inicio_vivas",
            "barbero_id",
            "inicio",
            unique=True,
            sqlite_where=text("estado != 'cancelada'"),
            postgresql_where=text("estado != 'cancelada'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    sucursal_id: int = Field(foreign_key="sucursales.id", index=True)
    cliente_id: int = Field(foreign_key="usuarios.id", index=True)
    barbero_id: Optional[int] = Field(
        default=None,
        foreign_key="usuarios.id",
        index=True,
    )
    inicio: Optional[datetime] = Field(default=None, sa_column=_fecha_local(index=True))
    fin: Optional[datetime] = Field(default=None, sa_column=_fecha_local())
    estado: EstadoOrden = Field(default=EstadoOrden.pendiente, index=True)
    notas: Optional[str] = None
    total_centavos: int = Field(default=0, ge=0)
    creado_en: datetime = Field(default_factory=datetime.utcnow, sa_column=_fecha_local(nullable=False))
    completada_en: Optional[datetime] = Field(default=None, sa_column=_fecha_local())

    # Resultado de la liquidación, guardado para completar de forma idempotente
    ganancia_centavos: Optional[int] = None
    puntos_otorgados: Optional[int] = None
    sellos_otorgados: Optional[int] = None


class ItemOrden(SQLModel, table=True):
    __tablename__ = "items_orden"

    id: Optional[int] = Field(default=None, primary_key=True)
    orden_id: int = Field(foreign_key="ordenes.id", index=True)
    tipo: TipoItem
    referencia_id: int = Field(description="id de servicio o producto")
    cantidad: int = Field(ge=1)
    precio_unitario_centavos: int = Field(ge=0)
    subtotal_centavos: int = Field(
        ge=0,
        description="cantidad * precio_unitario (guardado para histórico)"
    )


class Cita(SQLModel, table=True):
    """
    Registro de agenda gemelo de una orden con servicio.
    """
    __tablename__ = "citas"

    id: Optional[int] = Field(default=None, primary_key=True)
    orden_id: int = Field(foreign_key="ordenes.id", index=True, unique=True)
    barbero_id: int = Field(foreign_key="usuarios.id", index=True)
    cliente_id: int = Field(foreign_key="usuarios.id", index=True)
    servicio_id: int = Field(foreign_key="servicios.id")
    inicio: datetime = Field(sa_column=_fecha_local(nullable=False, index=True))
    fin: datetime = Field(sa_column=_fecha_local(nullable=False))
    estado: EstadoOrden = Field(default=EstadoOrden.pendiente)


# =========================
# Billetera, fidelidad y notificaciones
# =========================

class MovimientoBilletera(SQLModel, table=True):
    """
    Libro mayor de la billetera del barbero (solo se agregan filas).
    El saldo es la suma de monto_centavos.
    """
    __tablename__ = "movimientos_billetera"
    __table_args__ = (
        # Una orden acredita ganancia una sola vez
        Index(
            "ux_movimientos_ganancia_orden",
            "orden_id",
            unique=True,
            sqlite_where=text("tipo = 'ganancia'"),
            postgresql_where=text("tipo = 'ganancia'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    barbero_id: int = Field(foreign_key="usuarios.id", index=True)
    monto_centavos: int
    orden_id: Optional[int] = Field(default=None, foreign_key="ordenes.id", index=True)
    tipo: TipoMovimiento = Field(default=TipoMovimiento.ganancia)
    creado_en: datetime = Field(default_factory=datetime.utcnow, sa_column=_fecha_local(nullable=False))


class TarjetaFidelidad(SQLModel, table=True):
    __tablename__ = "tarjetas_fidelidad"
    __table_args__ = (
        Index("ux_tarjeta_cliente_sucursal", "cliente_id", "sucursal_id", unique=True),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    cliente_id: int = Field(foreign_key="usuarios.id")
    sucursal_id: int = Field(foreign_key="sucursales.id")
    puntos: int = Field(default=0, ge=0)
    sellos: int = Field(default=0, ge=0)


class Notificacion(SQLModel, table=True):
    """
    Cola de notificaciones push; el envío real lo hace un proceso externo.
    """
    __tablename__ = "notificaciones"

    id: Optional[int] = Field(default=None, primary_key=True)
    destinatario_id: int = Field(foreign_key="usuarios.id", index=True)
    canal: str = Field(default="push")
    titulo: str
    cuerpo: str
    datos: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    estado: str = Field(default="pendiente")
    creado_en: datetime = Field(default_factory=datetime.utcnow, sa_column=_fecha_local(nullable=False))
