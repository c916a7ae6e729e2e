# barberia_core/core_app.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from barberia_core.config import LOG_LEVEL
from barberia_core.db.conexion import init_db
from barberia_core.dominio.errores import ErrorDominio
from barberia_core.servicios import (
    autenticacion,
    billetera,
    carrito,
    catalogo,
    disponibilidad,
    fidelidad,
    ordenes,
    sucursales,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Inicializa la base de datos de la barbería al arrancar la app.
    """
    logger.info("Iniciando API de la barbería...")
    init_db()
    yield
    logger.info("Apagando API de la barbería...")


app = FastAPI(title="Barbería API", lifespan=lifespan)


# ---------- CORS ----------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],          # En producción se puede restringir al dominio del front
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Errores de dominio ----------

@app.exception_handler(ErrorDominio)
async def error_dominio_handler(request: Request, exc: ErrorDominio):
    logger.warning(f"{exc.codigo} en {request.url.path}: {exc.mensaje}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.mensaje, "codigo": exc.codigo},
    )


# ---------- Routers ----------

app.include_router(
    autenticacion.router,
    prefix="/api/auth",
    tags=["Autenticacion"],
)
app.include_router(
    sucursales.router,
    prefix="/api/sucursales",
    tags=["Sucursales"],
)
app.include_router(
    catalogo.router,
    prefix="/api/catalogo",
    tags=["Catalogo"],
)
app.include_router(
    disponibilidad.router,
    prefix="/api/disponibilidad",
    tags=["Disponibilidad"],
)
app.include_router(
    ordenes.router,
    prefix="/api/ordenes",
    tags=["Ordenes"],
)
app.include_router(
    carrito.router,
    prefix="/api/carrito",
    tags=["Carrito"],
)
app.include_router(
    billetera.router,
    prefix="/api/billetera",
    tags=["Billetera"],
)
app.include_router(
    fidelidad.router,
    prefix="/api/fidelidad",
    tags=["Fidelidad"],
)


# ---------- Endpoint de salud básico ----------

@app.get("/api/salud")
def check_salud():
    """
    Endpoint de prueba para verificar que la API está corriendo.
    """
    return {
        "estado": "ok",
        "mensaje": "API Barbería funcionando",
    }
