# barberia_core/db/conexion.py
from typing import Generator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from barberia_core.config import DB_URL

# Necesario para SQLite en modo multi-hilo
connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}


def transacciones_inmediatas(engine: Engine) -> Engine:
    """
    En SQLite cada transacción arranca con BEGIN IMMEDIATE: toma el lock de
    escritura de entrada, así dos reservas no pueden verificar la agenda a
    la vez y después insertar las dos. En Postgres el mismo efecto lo da el
    SELECT ... FOR UPDATE sobre el barbero.
    """
    @event.listens_for(engine, "connect")
    def _sin_begin_implicito(dbapi_conn, _record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_inmediato(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = create_engine(DB_URL, echo=False, connect_args=connect_args)
if DB_URL.startswith("sqlite"):
    transacciones_inmediatas(engine)


def init_db() -> None:
    """
    Crea todas las tablas definidas en db.modelos si no existen.
    """
    # Import tardío para registrar los modelos antes de create_all
    from barberia_core.db import modelos  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """
    Devuelve una sesión de SQLModel para usar con Depends() en FastAPI.
    expire_on_commit=False para poder serializar después del commit.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session
