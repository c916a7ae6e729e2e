import datetime as dt
import unittest
from types import SimpleNamespace

from barberia_core.dominio.carrito import (
    AlmacenMemoria,
    BorradorReserva,
    CartSession,
    LineaProducto,
    checkout,
    reconcile,
)
from barberia_core.dominio.disponibilidad import (
    PoliticaPaso,
    ReglaHorario,
    compute_slots,
    indice_dia_semana,
    resolve_hours_rule,
    slots_for_staff,
)
from barberia_core.dominio.errores import ConflictError, ValidationError
from barberia_core.dominio.intervalos import Intervalo, add_minutes, overlaps
from barberia_core.dominio.liquidacion import settle

DIA = dt.date(2026, 10, 21)  # miércoles
NUEVE_A_SEIS = ReglaHorario(apertura=dt.time(9, 0), cierre=dt.time(18, 0))


def hora(h, m=0, dia=DIA):
    return dt.datetime.combine(dia, dt.time(h, m))


def item(tipo, cantidad, subtotal):
    return SimpleNamespace(tipo=tipo, cantidad=cantidad, subtotal_centavos=subtotal)


class IntervalosTestCase(unittest.TestCase):
    def test_touching_endpoints_do_not_overlap(self) -> None:
        a = Intervalo(hora(9), hora(10))
        b = Intervalo(hora(10), hora(11))
        self.assertFalse(overlaps(a, b))
        self.assertFalse(overlaps(b, a))

    def test_partial_and_contained_overlap(self) -> None:
        a = Intervalo(hora(9), hora(10))
        self.assertTrue(overlaps(a, Intervalo(hora(9, 59), hora(11))))
        self.assertTrue(overlaps(Intervalo(hora(8), hora(12)), a))

    def test_interval_requires_start_before_end(self) -> None:
        with self.assertRaises(ValueError):
            Intervalo(hora(10), hora(10))

    def test_add_minutes(self) -> None:
        self.assertEqual(add_minutes(hora(23, 30), 45), dt.datetime(2026, 10, 22, 0, 15))


class HorarioTestCase(unittest.TestCase):
    def test_weekday_index_starts_on_sunday(self) -> None:
        self.assertEqual(indice_dia_semana(dt.date(2026, 10, 18)), 0)
        self.assertEqual(indice_dia_semana(dt.date(2026, 10, 19)), 1)
        self.assertEqual(indice_dia_semana(dt.date(2026, 10, 24)), 6)

    def test_weekday_rule_wins_over_default(self) -> None:
        horario = {
            "3": {"inicio": "10:00", "fin": "14:00"},
            "default": {"inicio": "08:00", "fin": "20:00"},
        }
        regla = resolve_hours_rule(horario, DIA)
        self.assertEqual(regla, ReglaHorario(dt.time(10), dt.time(14)))

    def test_default_rule_then_hardcoded_fallback(self) -> None:
        regla = resolve_hours_rule({"default": {"inicio": "08:30", "fin": "20:00"}}, DIA)
        self.assertEqual(regla, ReglaHorario(dt.time(8, 30), dt.time(20)))
        self.assertEqual(resolve_hours_rule(None, DIA), NUEVE_A_SEIS)
        self.assertEqual(resolve_hours_rule({}, DIA), NUEVE_A_SEIS)

    def test_missing_field_falls_back_per_field(self) -> None:
        regla = resolve_hours_rule({"3": {"inicio": "11:00"}}, DIA)
        self.assertEqual(regla, ReglaHorario(dt.time(11), dt.time(18)))

    def test_malformed_rule_uses_fallback(self) -> None:
        regla = resolve_hours_rule({"default": {"inicio": "nueve", "fin": "18:00"}}, DIA)
        self.assertEqual(regla, NUEVE_A_SEIS)


class ComputeSlotsTestCase(unittest.TestCase):
    def test_scenario_hourly_step_with_busy_staff(self) -> None:
        ocupados = {7: [Intervalo(hora(10), hora(10, 45))]}
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 45, [7], ocupados)
        por_inicio = {t.inicio: t for t in turnos}

        self.assertEqual(por_inicio[hora(10)].barberos_libres, ())
        self.assertFalse(por_inicio[hora(10)].disponible)
        self.assertEqual(por_inicio[hora(9)].barberos_libres, (7,))
        self.assertEqual(por_inicio[hora(11)].barberos_libres, (7,))
        # 17:00 + 45 = 17:45 entra; 18:00 no
        self.assertEqual(turnos[-1].inicio, hora(17))
        self.assertEqual(len(turnos), 9)

    def test_scenario_margin_step_two_staff(self) -> None:
        ocupados = {1: [Intervalo(hora(9), hora(12))], 2: []}
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 30, [1, 2], ocupados, margen_min=15)

        self.assertEqual(turnos[0].inicio, hora(9))
        self.assertEqual(turnos[0].fin, hora(9, 30))
        self.assertEqual(turnos[0].barberos_libres, (2,))
        self.assertEqual(turnos[1].inicio, hora(9, 45))

    def test_slots_respect_duration_and_day_bounds(self) -> None:
        for politica in (PoliticaPaso.margen, PoliticaPaso.hora):
            turnos = compute_slots(
                NUEVE_A_SEIS, DIA, 50, [1], {}, margen_min=10, politica=politica
            )
            self.assertTrue(turnos)
            for t in turnos:
                self.assertEqual(t.fin - t.inicio, dt.timedelta(minutes=50))
                self.assertGreaterEqual(t.inicio, hora(9))
                self.assertLessEqual(t.fin, hora(18))

    def test_free_staff_never_overlap_busy_intervals(self) -> None:
        ocupados = {
            1: [Intervalo(hora(9, 20), hora(9, 50)), Intervalo(hora(13), hora(15))],
            2: [Intervalo(hora(11), hora(11, 5))],
            3: [],
        }
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 40, [1, 2, 3], ocupados, margen_min=5)
        for t in turnos:
            slot = Intervalo(t.inicio, t.fin)
            self.assertTrue(set(t.barberos_libres) <= {1, 2, 3})
            for b in t.barberos_libres:
                self.assertFalse(any(overlaps(slot, o) for o in ocupados[b]))

    def test_margin_spacing_between_consecutive_slots(self) -> None:
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 25, [1], {}, margen_min=20)
        for prev, nxt in zip(turnos, turnos[1:]):
            self.assertGreaterEqual(nxt.inicio, prev.fin + dt.timedelta(minutes=20))

    def test_same_inputs_same_output(self) -> None:
        ocupados = {1: [Intervalo(hora(12), hora(13))]}
        a = compute_slots(NUEVE_A_SEIS, DIA, 30, [1, 2], ocupados, margen_min=15)
        b = compute_slots(NUEVE_A_SEIS, DIA, 30, [1, 2], ocupados, margen_min=15)
        self.assertEqual(a, b)

    def test_zero_margin_is_margin_policy(self) -> None:
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 30, [1], {}, margen_min=0)
        self.assertEqual(turnos[1].inicio, hora(9, 30))

    def test_no_candidates_gives_disabled_slots(self) -> None:
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 60, [], {})
        self.assertEqual(len(turnos), 9)
        self.assertTrue(all(t.barberos_libres == () for t in turnos))

    def test_invalid_inputs_return_empty(self) -> None:
        self.assertEqual(compute_slots(NUEVE_A_SEIS, DIA, 0, [1], {}), [])
        self.assertEqual(compute_slots(NUEVE_A_SEIS, DIA, -30, [1], {}), [])
        al_reves = ReglaHorario(apertura=dt.time(18), cierre=dt.time(9))
        self.assertEqual(compute_slots(al_reves, DIA, 30, [1], {}), [])
        self.assertEqual(compute_slots(NUEVE_A_SEIS, DIA, 30, [1], {}, margen_min=-5), [])

    def test_duration_longer_than_day(self) -> None:
        corto = ReglaHorario(apertura=dt.time(9), cierre=dt.time(9, 30))
        self.assertEqual(compute_slots(corto, DIA, 45, [1], {}), [])

    def test_omit_unavailable(self) -> None:
        ocupados = {1: [Intervalo(hora(9), hora(12))]}
        turnos = compute_slots(NUEVE_A_SEIS, DIA, 60, [1], ocupados, omitir_no_disponibles=True)
        self.assertEqual(turnos[0].inicio, hora(12))
        self.assertTrue(all(t.disponible for t in turnos))

    def test_staff_first_flow_lists_only_free_times(self) -> None:
        ocupados = [Intervalo(hora(9), hora(10)), Intervalo(hora(15, 30), hora(16))]
        turnos = slots_for_staff(NUEVE_A_SEIS, DIA, 45, 4, ocupados)
        inicios = [t.inicio.hour for t in turnos]
        self.assertEqual(inicios, [10, 11, 12, 13, 14, 16, 17])
        self.assertTrue(all(t.barberos_libres == (4,) for t in turnos))


class LiquidacionTestCase(unittest.TestCase):
    def test_commission_uses_floor(self) -> None:
        liq = settle([item("servicio", 1, 199)], 5000)
        self.assertEqual(liq.ganancia_centavos, 99)
        self.assertEqual(liq.puntos, 1)

    def test_two_service_lines(self) -> None:
        liq = settle(
            [item("servicio", 1, 10000), item("servicio", 1, 5000), item("producto", 3, 9000)],
            5000,
        )
        self.assertEqual(liq.ganancia_centavos, 7500)
        self.assertEqual(liq.puntos, 150)
        self.assertEqual(liq.sellos, 2)

    def test_default_rate_and_quantities(self) -> None:
        liq = settle([item("servicio", 2, 3000)])
        self.assertEqual(liq.ganancia_centavos, 1500)
        self.assertEqual(liq.sellos, 2)

    def test_products_only(self) -> None:
        liq = settle([item("producto", 1, 2500)], 7000)
        self.assertEqual((liq.ganancia_centavos, liq.puntos, liq.sellos), (0, 0, 0))

    def test_rate_out_of_range(self) -> None:
        with self.assertRaises(ValidationError):
            settle([], 10001)


class CarritoTestCase(unittest.TestCase):
    def borrador(self, **kwargs) -> BorradorReserva:
        datos = dict(
            sucursal_id=1,
            barbero_id=7,
            servicio_id=3,
            precio_centavos=25000,
            inicio=hora(10),
            fin=hora(10, 45),
        )
        datos.update(kwargs)
        return BorradorReserva(**datos)

    def test_same_draft_twice_merges_products(self) -> None:
        carrito = CartSession()
        carrito.agregar_servicio(self.borrador(productos=[LineaProducto(10, 1)]))
        carrito.agregar_servicio(
            self.borrador(productos=[LineaProducto(10, 2), LineaProducto(11, 1)])
        )

        self.assertEqual(len(carrito.servicios), 1)
        self.assertEqual(
            carrito.servicios[0].productos,
            [LineaProducto(10, 3), LineaProducto(11, 1)],
        )

    def test_one_order_per_draft_and_one_for_loose_products(self) -> None:
        solicitudes = reconcile(
            [
                self.borrador(productos=[LineaProducto(10, 1)]),
                self.borrador(barbero_id=8, inicio=hora(11), fin=hora(11, 45)),
            ],
            [LineaProducto(20, 1), LineaProducto(21, 2), LineaProducto(20, 1)],
        )

        self.assertEqual(len(solicitudes), 3)
        primera, segunda, sueltos = solicitudes
        self.assertEqual([(i.tipo, i.id, i.cantidad) for i in primera.items],
                         [("servicio", 3, 1), ("producto", 10, 1)])
        self.assertEqual(segunda.barbero_id, 8)
        self.assertIsNone(sueltos.barbero_id)
        self.assertIsNone(sueltos.inicio)
        self.assertFalse(sueltos.tiene_servicio)
        self.assertEqual(sueltos.sucursal_id, 1)
        self.assertEqual([(i.id, i.cantidad) for i in sueltos.items], [(20, 2), (21, 2)])

    def test_empty_cart_is_nothing_to_confirm(self) -> None:
        self.assertEqual(reconcile([], []), [])
        self.assertTrue(CartSession().vacio)

    def test_loose_products_need_a_branch(self) -> None:
        with self.assertRaises(ValidationError):
            reconcile([], [LineaProducto(20, 1)])
        solicitudes = reconcile([], [LineaProducto(20, 1)], sucursal_id=2)
        self.assertEqual(solicitudes[0].sucursal_id, 2)

    def test_product_attached_to_draft_by_key(self) -> None:
        carrito = CartSession()
        b = carrito.agregar_servicio(self.borrador())
        carrito.agregar_producto(10, 2, clave=b.clave)
        carrito.agregar_producto(30)

        self.assertEqual(carrito.servicios[0].productos, [LineaProducto(10, 2)])
        self.assertEqual(carrito.productos, [LineaProducto(30, 1)])
        with self.assertRaises(ValidationError):
            carrito.agregar_producto(10, 0)

    def test_records_survive_store(self) -> None:
        almacen = AlmacenMemoria()
        carrito = CartSession()
        carrito.agregar_servicio(self.borrador(productos=[LineaProducto(10, 1)]))
        carrito.agregar_producto(30, 2)
        carrito.save(almacen)

        recargado = CartSession.load(almacen)
        self.assertEqual(recargado.to_records(), carrito.to_records())
        self.assertEqual(almacen.registros["servicios"][0]["inicio"], "2026-10-21T10:00:00")

    def test_malformed_records(self) -> None:
        with self.assertRaises(ValidationError):
            CartSession.from_records({"servicios": [{"barbero_id": 1}]})

    def test_checkout_clears_cart_and_reports_each_result(self) -> None:
        almacen = AlmacenMemoria()
        carrito = CartSession()
        carrito.agregar_servicio(self.borrador())
        carrito.agregar_servicio(self.borrador(barbero_id=8))
        carrito.agregar_producto(30)
        enviados = []

        def enviar(sol):
            enviados.append(sol)
            if sol.barbero_id == 8:
                raise ConflictError("Ese horario ya no está disponible")
            return len(enviados)

        resultados = checkout(carrito, enviar, almacen)

        self.assertEqual(len(enviados), 3)
        self.assertEqual([r.ok for r in resultados], [True, False, True])
        self.assertEqual(resultados[1].error.codigo, "SlotUnavailable")
        self.assertEqual(resultados[2].orden_id, 3)
        self.assertTrue(carrito.vacio)
        self.assertIsNone(almacen.registros)


if __name__ == "__main__":
    unittest.main()
