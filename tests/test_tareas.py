"""Tests de tareas: estados automáticos, vencimiento, filtros y recurrencia."""

from datetime import datetime

import mongomock
import pytest

from bruce.database import TAREAS
from bruce.models.base import today_str
from bruce.models.tarea import (
    aplicar_reglas_estado,
    calcular_siguiente_fecha,
    construir_siguiente_tarea,
    debe_enviar_recordatorio,
)
from conftest import ADMIN_EMAIL, crear_tarea


class TestSiguienteFecha:
    @pytest.mark.parametrize(
        "frecuencia,esperada",
        [
            ("diaria", "2099-01-11"),
            ("semanal", "2099-01-17"),
            ("quincenal", "2099-01-25"),
            ("mensual", "2099-02-10"),
        ],
    )
    def test_frecuencias(self, frecuencia, esperada):
        tarea = {"fechaProgramada": "2099-01-10", "frecuencia": frecuencia}
        assert calcular_siguiente_fecha(tarea) == esperada

    def test_personalizada(self):
        tarea = {"fechaProgramada": "2099-01-10", "frecuencia": "personalizada", "intervaloPersonalizado": 3}
        assert calcular_siguiente_fecha(tarea) == "2099-01-13"

    def test_mensual_ajusta_fin_de_mes(self):
        assert calcular_siguiente_fecha({"fechaProgramada": "2099-01-31", "frecuencia": "mensual"}) == "2099-02-28"
        assert calcular_siguiente_fecha({"fechaProgramada": "2099-12-15", "frecuencia": "mensual"}) == "2100-01-15"

    def test_respeta_fin_de_repeticion(self):
        tarea = {"fechaProgramada": "2099-01-10", "frecuencia": "semanal", "fechaFinRepeticion": "2099-01-15"}
        assert calcular_siguiente_fecha(tarea) is None
        tarea["frecuencia"] = "diaria"
        assert calcular_siguiente_fecha(tarea) == "2099-01-11"


class TestReglasEstado:
    def test_completada_estampa_fecha(self):
        tarea = aplicar_reglas_estado({"estado": "completada", "fechaProgramada": "2099-01-10"}, "pendiente", hoy="2099-01-05")
        assert tarea["fechaCompletada"] == "2099-01-05"

    def test_pendiente_pasada_se_vence(self):
        tarea = aplicar_reglas_estado({"estado": "pendiente", "fechaProgramada": "2020-01-01"}, hoy="2099-01-05")
        assert tarea["estado"] == "vencida"

    def test_no_recurrente_no_genera_siguiente(self):
        assert construir_siguiente_tarea({"estado": "completada", "esRecurrente": False}) is None

    def test_recordatorio(self):
        tarea = {
            "estado": "pendiente",
            "fechaProgramada": "2099-01-10",
            "horaProgramada": "10:00",
            "recordatorioActivado": True,
            "minutosRecordatorio": 60,
        }
        assert debe_enviar_recordatorio(tarea, ahora=datetime(2099, 1, 10, 9, 30))
        assert not debe_enviar_recordatorio(tarea, ahora=datetime(2099, 1, 10, 8, 0))
        tarea["recordatorioEnviado"] = True
        assert not debe_enviar_recordatorio(tarea, ahora=datetime(2099, 1, 10, 9, 30))


class TestCrear:
    def test_admin_crea(self, client, admin_headers):
        body = crear_tarea(client, admin_headers, creadoPor="otro@correo.com")
        data = body["data"]
        assert data["estado"] == "pendiente"
        assert data["creadoPor"] == ADMIN_EMAIL
        assert data["fechaCreacion"] == today_str()
        assert data["estaVencida"] is False
        assert data["prioridad"] == "media"

    def test_fecha_pasada_queda_vencida(self, client, admin_headers):
        data = crear_tarea(client, admin_headers, fechaProgramada="2020-01-01")["data"]
        assert data["estado"] == "vencida"
        assert data["estaVencida"] is True

    def test_user_no_crea(self, client, user_headers):
        resp = client.post(
            "/api/tareas",
            json={"cultivoId": "c1", "titulo": "Regar", "fechaProgramada": "2099-01-01"},
            headers=user_headers,
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize(
        "faltante,mensaje",
        [
            ("titulo", "El título de la tarea es obligatorio"),
            ("cultivoId", "El ID del cultivo es obligatorio"),
            ("fechaProgramada", "La fecha programada es obligatoria"),
        ],
    )
    def test_campos_obligatorios(self, client, admin_headers, faltante, mensaje):
        payload = {"cultivoId": "c1", "titulo": "Regar", "fechaProgramada": "2099-01-01"}
        payload.pop(faltante)
        resp = client.post("/api/tareas", json=payload, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == mensaje

    def test_recurrente_requiere_frecuencia(self, client, admin_headers):
        resp = client.post(
            "/api/tareas",
            json={"cultivoId": "c1", "titulo": "Regar", "fechaProgramada": "2099-01-01", "esRecurrente": True},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert any("frecuencia" in d for d in resp.json()["details"])


class TestListar:
    def test_paginacion(self, client, admin_headers):
        for dia in ("01", "02", "03"):
            crear_tarea(client, admin_headers, titulo=f"Riego {dia}", fechaProgramada=f"2099-01-{dia}")

        resp = client.get("/api/tareas?_page=1&_limit=2", headers=admin_headers)
        body = resp.json()
        assert body["total"] == 3
        assert body["page"] == 1
        assert body["totalPages"] == 2
        assert [t["titulo"] for t in body["data"]] == ["Riego 01", "Riego 02"]

        resp = client.get("/api/tareas?_page=2&_limit=2", headers=admin_headers)
        assert [t["titulo"] for t in resp.json()["data"]] == ["Riego 03"]

    def test_filtro_vencida_incluye_pendientes_pasadas(self, client, db, admin_headers):
        crear_tarea(client, admin_headers, titulo="Futura")
        crear_tarea(client, admin_headers, titulo="Vencida guardada", fechaProgramada="2020-01-01")
        db[TAREAS].insert_one({
            "cultivoId": "cultivo-1",
            "titulo": "Pendiente vieja",
            "estado": "pendiente",
            "fechaProgramada": "2021-06-01",
            "creadoPor": ADMIN_EMAIL,
        })

        resp = client.get("/api/tareas?estado=vencida", headers=admin_headers)
        data = resp.json()["data"]
        assert sorted(t["titulo"] for t in data) == ["Pendiente vieja", "Vencida guardada"]
        assert all(t["estado"] == "vencida" for t in data)

        resp = client.get("/api/tareas?estado=pendiente", headers=admin_headers)
        assert [t["titulo"] for t in resp.json()["data"]] == ["Futura"]

    def test_filtros_y_orden(self, client, admin_headers):
        crear_tarea(client, admin_headers, titulo="Poda", tipo="poda", fechaProgramada="2099-03-01")
        crear_tarea(client, admin_headers, titulo="Riego", fechaProgramada="2099-01-01")
        crear_tarea(client, admin_headers, titulo="Otro cultivo", cultivo_id="cultivo-2", fechaProgramada="2099-02-01")

        resp = client.get("/api/tareas?cultivoId=cultivo-1", headers=admin_headers)
        assert [t["titulo"] for t in resp.json()["data"]] == ["Riego", "Poda"]

        resp = client.get("/api/tareas?tipo=poda", headers=admin_headers)
        assert resp.json()["total"] == 1

        resp = client.get("/api/tareas?fechaDesde=2099-01-15&fechaHasta=2099-02-15", headers=admin_headers)
        assert [t["titulo"] for t in resp.json()["data"]] == ["Otro cultivo"]

        resp = client.get("/api/tareas?q=pod", headers=admin_headers)
        assert [t["titulo"] for t in resp.json()["data"]] == ["Poda"]


class TestActualizar:
    def test_titulo_vacio(self, client, admin_headers):
        tarea = crear_tarea(client, admin_headers)["data"]
        resp = client.patch(f"/api/tareas/{tarea['id']}", json={"titulo": "  "}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "El título de la tarea debe ser una cadena de texto no vacía"

    def test_completar_estampa_fecha(self, client, admin_headers):
        tarea = crear_tarea(client, admin_headers)["data"]
        resp = client.patch(f"/api/tareas/{tarea['id']}", json={"estado": "completada"}, headers=admin_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["data"]["fechaCompletada"] == today_str()
        assert body["data"]["editadoPor"] == ADMIN_EMAIL
        assert "siguienteTarea" not in body

    def test_recurrencia_enlaza_con_la_raiz(self, client, db, admin_headers):
        raiz = crear_tarea(
            client, admin_headers,
            esRecurrente=True, frecuencia="semanal", fechaProgramada="2099-01-10",
        )["data"]

        resp = client.patch(f"/api/tareas/{raiz['id']}", json={"estado": "completada"}, headers=admin_headers)
        siguiente = resp.json()["siguienteTarea"]
        assert siguiente["fechaProgramada"] == "2099-01-17"
        assert siguiente["estado"] == "pendiente"
        assert siguiente["tareaPadreId"] == raiz["id"]
        assert siguiente["creadoPor"] == ADMIN_EMAIL
        assert "fechaCompletada" not in siguiente

        resp = client.patch(f"/api/tareas/{siguiente['id']}", json={"estado": "completada"}, headers=admin_headers)
        tercera = resp.json()["siguienteTarea"]
        assert tercera["fechaProgramada"] == "2099-01-24"
        assert tercera["tareaPadreId"] == raiz["id"]
        assert db[TAREAS].count_documents({}) == 3

    def test_recompletar_no_duplica(self, client, db, admin_headers):
        tarea = crear_tarea(client, admin_headers, esRecurrente=True, frecuencia="diaria")["data"]
        client.patch(f"/api/tareas/{tarea['id']}", json={"estado": "completada"}, headers=admin_headers)
        resp = client.patch(f"/api/tareas/{tarea['id']}", json={"notas": "ok"}, headers=admin_headers)
        assert "siguienteTarea" not in resp.json()
        assert db[TAREAS].count_documents({}) == 2

    def test_user_no_edita_tarea_del_admin(self, client, admin_headers, user_headers):
        tarea = crear_tarea(client, admin_headers)["data"]
        resp = client.patch(f"/api/tareas/{tarea['id']}", json={"notas": "x"}, headers=user_headers)
        assert resp.status_code == 403

    def test_inexistente(self, client, admin_headers):
        resp = client.patch("/api/tareas/65a1b2c3d4e5f6a7b8c9d0e1", json={"notas": "x"}, headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "Tarea no encontrada"

    def test_borrada_durante_actualizacion(self, client, db, admin_headers, monkeypatch):
        tarea = crear_tarea(client, admin_headers)["data"]
        original = mongomock.collection.Collection.find_one_and_update

        def borrar_antes(coleccion, filtro, *args, **kwargs):
            coleccion.delete_one(filtro)
            return original(coleccion, filtro, *args, **kwargs)

        monkeypatch.setattr(mongomock.collection.Collection, "find_one_and_update", borrar_antes)
        resp = client.patch(f"/api/tareas/{tarea['id']}", json={"notas": "x"}, headers=admin_headers)
        assert resp.status_code == 404
        assert resp.json()["error"] == "Tarea no encontrada"


class TestBorrar:
    def test_solo_admin(self, client, db, admin_headers, user_headers):
        tarea = crear_tarea(client, admin_headers)["data"]
        assert client.delete(f"/api/tareas/{tarea['id']}", headers=user_headers).status_code == 403
        assert client.delete(f"/api/tareas/{tarea['id']}", headers=admin_headers).status_code == 200
        assert db[TAREAS].count_documents({}) == 0
