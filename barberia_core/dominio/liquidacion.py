# barberia_core/dominio/liquidacion.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from barberia_core.dominio.errores import ValidationError

COMISION_BP_FALLBACK = 5000  # 50%
BP_TOTAL = 10000
CENTAVOS_POR_PUNTO = 100


@dataclass(frozen=True)
class Liquidacion:
    ganancia_centavos: int
    puntos: int
    sellos: int


def settle(items: Iterable[Any], comision_bp: Optional[int] = None) -> Liquidacion:
    """
    Comisión y fidelidad de una orden completada.

    `items` son líneas con `tipo`, `cantidad` y `subtotal_centavos`
    (por ejemplo ItemOrden). Solo cuentan las líneas de servicio:
      ganancia = floor(subtotal_servicios * comision_bp / 10000)
      puntos   = floor(subtotal_servicios / 100)
      sellos   = unidades de servicio
    """
    if comision_bp is None:
        comision_bp = COMISION_BP_FALLBACK
    if not 0 <= comision_bp <= BP_TOTAL:
        raise ValidationError("comision_bp debe estar entre 0 y 10000")

    subtotal = 0
    unidades = 0
    for it in items:
        if it.tipo != "servicio":
            continue
        subtotal += int(it.subtotal_centavos)
        unidades += int(it.cantidad)

    return Liquidacion(
        ganancia_centavos=subtotal * comision_bp // BP_TOTAL,
        puntos=subtotal // CENTAVOS_POR_PUNTO,
        sellos=unidades,
    )
