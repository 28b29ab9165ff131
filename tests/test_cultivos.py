"""Tests del CRUD de cultivos: permisos, validación, fases y métricas derivadas."""

from datetime import datetime

from bruce.database import CULTIVOS
from bruce.models.cultivo import calcular_fases, calcular_metricas
from conftest import ADMIN_EMAIL, crear_cultivo


class TestCalculos:
    def test_fases_con_floracion(self):
        fases = calcular_fases("2024-01-01", "2024-02-05", hoy=datetime(2024, 2, 19))
        assert fases == {
            "diasVegetacionActual": 35,
            "diasFloracionActual": 14,
            "semanaVegetacion": 6,
            "semanaFloracion": 3,
        }

    def test_fases_sin_floracion(self):
        fases = calcular_fases("2024-01-01", hoy=datetime(2024, 1, 11))
        assert fases["diasVegetacionActual"] == 10
        assert fases["semanaVegetacion"] == 2
        assert fases["diasFloracionActual"] == 0
        assert fases["semanaFloracion"] == 0

    def test_sin_fecha_de_comienzo(self):
        assert calcular_fases(None) == {}

    def test_metricas(self):
        metricas = calcular_metricas(
            {"metrosCuadrados": 2, "numeroplantas": 4, "potenciaLamparas": 600, "litrosMaceta": 10},
        )
        assert metricas["plantasPorM2"] == 2.0
        assert metricas["wattsPorM2"] == 300.0
        assert metricas["litrosTotales"] == 40
        assert metricas["diasDesdeInicio"] == 0


class TestCrear:
    def test_admin_crea_y_se_estampa_creador(self, client, admin_headers):
        data = crear_cultivo(
            client, admin_headers,
            creadoPor="intruso@correo.com",
            fechaComienzo="2024-01-01",
            fechaInicioFloracion="2024-02-05",
            potenciaLamparas=600,
        )
        assert data["creadoPor"] == ADMIN_EMAIL
        assert data["activo"] is True
        assert data["diasVegetacionActual"] == 35
        assert data["semanaVegetacion"] == 6
        assert data["wattsPorM2"] == 300.0
        assert data["fechaCreacion"].endswith("Z")
        assert "_id" not in data and data["id"]

    def test_user_no_puede_crear(self, client, user_headers):
        resp = client.post("/api/cultivos", json={"nombre": "X"}, headers=user_headers)
        assert resp.status_code == 403
        assert resp.json()["error"] == "Solo los administradores pueden crear cultivos"

    def test_validacion_con_detalles(self, client, admin_headers):
        resp = client.post("/api/cultivos", json={"nombre": "X", "phObjetivo": 15}, headers=admin_headers)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Datos inválidos"
        assert any(d.startswith("phObjetivo") for d in body["details"])

    def test_nombre_obligatorio(self, client, admin_headers):
        resp = client.post("/api/cultivos", json={"nombre": "   "}, headers=admin_headers)
        assert resp.status_code == 400
        assert any("nombre" in d for d in resp.json()["details"])

    def test_floracion_antes_del_comienzo(self, client, admin_headers):
        resp = client.post(
            "/api/cultivos",
            json={"nombre": "X", "fechaComienzo": "2024-03-01", "fechaInicioFloracion": "2024-02-01"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "floración" in " ".join(resp.json()["details"])


class TestListar:
    def test_paginacion(self, client, admin_headers):
        for nombre in ("A", "B", "C"):
            crear_cultivo(client, admin_headers, nombre=nombre)
        resp = client.get("/api/cultivos?_limit=2&_page=1", headers=admin_headers)
        body = resp.json()
        assert body["total"] == 3
        assert body["totalPages"] == 2
        assert body["limit"] == 2
        assert len(body["data"]) == 2

        resp = client.get("/api/cultivos?_limit=2&_page=2", headers=admin_headers)
        assert len(resp.json()["data"]) == 1

    def test_busqueda_y_orden(self, client, admin_headers):
        crear_cultivo(client, admin_headers, nombre="Zeta", genetica="White Widow")
        crear_cultivo(client, admin_headers, nombre="Alfa", genetica="Amnesia")
        crear_cultivo(client, admin_headers, nombre="Beta", genetica="widow clone")

        resp = client.get("/api/cultivos?q=WIDOW&_sort=nombre&_order=asc", headers=admin_headers)
        assert [c["nombre"] for c in resp.json()["data"]] == ["Beta", "Zeta"]

    def test_filtro_activo(self, client, admin_headers):
        crear_cultivo(client, admin_headers, nombre="Activo")
        crear_cultivo(client, admin_headers, nombre="Archivado", activo=False)
        resp = client.get("/api/cultivos?activo=false", headers=admin_headers)
        assert [c["nombre"] for c in resp.json()["data"]] == ["Archivado"]


class TestDetalleEdicionBorrado:
    def test_id_invalido(self, client, admin_headers):
        resp = client.get("/api/cultivos/no-es-un-id", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "ID inválido"

    def test_inexistente(self, client, admin_headers):
        resp = client.get("/api/cultivos/65a1b2c3d4e5f6a7b8c9d0e1", headers=admin_headers)
        assert resp.status_code == 404

    def test_patch_recalcula_fases(self, client, admin_headers):
        cultivo = crear_cultivo(client, admin_headers, fechaComienzo="2024-01-01")
        resp = client.patch(
            f"/api/cultivos/{cultivo['id']}",
            json={"fechaInicioFloracion": "2024-01-15", "creadoPor": "otro@correo.com"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["diasVegetacionActual"] == 14
        assert data["semanaVegetacion"] == 3
        assert data["editadoPor"] == ADMIN_EMAIL
        assert data["creadoPor"] == ADMIN_EMAIL
        assert data["nombre"] == "Indoor 1"

    def test_patch_revalida_contra_documento(self, client, admin_headers):
        cultivo = crear_cultivo(client, admin_headers, fechaComienzo="2024-03-01")
        resp = client.patch(
            f"/api/cultivos/{cultivo['id']}",
            json={"fechaInicioFloracion": "2024-02-01"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_user_no_edita_cultivo_del_admin(self, client, admin_headers, user_headers):
        cultivo = crear_cultivo(client, admin_headers)
        resp = client.patch(f"/api/cultivos/{cultivo['id']}", json={"nombre": "Y"}, headers=user_headers)
        assert resp.status_code == 404

    def test_borrado(self, client, db, admin_headers, user_headers):
        cultivo = crear_cultivo(client, admin_headers)

        resp = client.delete(f"/api/cultivos/{cultivo['id']}", headers=user_headers)
        assert resp.status_code == 403

        resp = client.delete(f"/api/cultivos/{cultivo['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == cultivo["id"]
        assert db[CULTIVOS].count_documents({}) == 0
