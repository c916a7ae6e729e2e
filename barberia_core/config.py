# barberia_core/config.py
import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# .env en la raíz del proyecto
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Base de datos de la barbería.
# Puedes sobreescribirla con la variable de entorno BARBERIA_DB_URL
DB_URL = os.getenv("BARBERIA_DB_URL", "sqlite:///./datos_barberia.db")

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    warnings.warn(
        "SECRET_KEY no configurada! Usando clave insegura de desarrollo",
        RuntimeWarning,
        stacklevel=2,
    )
    SECRET_KEY = "CHANGE_ME_SUPER_SECRET"

ACCESS_MIN = int(os.getenv("ACCESS_MINUTES", "720"))  # 12h default

# Comisión del barbero en puntos básicos (5000 = 50%)
COMISION_BP_DEFAULT = int(os.getenv("COMISION_BP_DEFAULT", "5000"))

# Margen entre turnos para la política "margen" del agendador
MARGEN_MINUTOS_DEFAULT = int(os.getenv("MARGEN_MINUTOS_DEFAULT", "15"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
