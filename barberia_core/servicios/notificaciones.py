# barberia_core/servicios/notificaciones.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from barberia_core.db.modelos import Notificacion

logger = logging.getLogger(__name__)


def encolar_notificacion(
    session: Session,
    destinatario_id: Optional[int],
    titulo: str,
    cuerpo: str,
    datos: Optional[Dict[str, Any]] = None,
) -> Optional[Notificacion]:
    """
    Deja una notificación push pendiente. Es best-effort: si falla se
    registra y se sigue, nunca corta la operación que la disparó.
    Llamar después del commit de la operación principal.
    """
    if destinatario_id is None:
        return None

    try:
        noti = Notificacion(
            destinatario_id=destinatario_id,
            titulo=titulo,
            cuerpo=cuerpo,
            datos=datos or {},
        )
        session.add(noti)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("No se pudo encolar notificación para %s", destinatario_id)
        return None
    return noti
