"""
Endpoint tests for the binding-code, cache and farm routes.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from cowtracker.auth import CurrentUser, get_current_user
from cowtracker.database import get_db
from cowtracker.main import app
from cowtracker.models import Farm, FarmMembership, User
from cowtracker.routers.vincular import get_binding_codes
from cowtracker.services.binding_codes import BindingCodeManager
from cowtracker.services.farm_service import FarmService
from cowtracker.services.membership_service import MembershipService
from cowtracker.services.user_service import UserService


@pytest.fixture
def caller(worker):
    return CurrentUser(uid=worker.id_autentificar, email=worker.correo, user=worker)


@pytest.fixture
def codes(clock):
    return BindingCodeManager(clock=clock)


@pytest.fixture
def client(db, caller, codes):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: caller
    app.dependency_overrides[get_binding_codes] = lambda: codes
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def farm():
    return Farm(
        id_finca=42,
        nombre="La Esperanza",
        tamano=120,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestVincularRoutes:
    def test_generate_code(self, client, farm):
        with patch.object(FarmService, "get_farm", new=AsyncMock(return_value=farm)):
            response = client.post(
                "/api/vincular/generar",
                json={"idFinca": 42, "tipo": "trabajador", "duracionMinutos": 30},
            )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]["codigo"]) == 6
        assert body["data"]["idFinca"] == 42
        assert body["data"]["tipo"] == "worker"
        assert body["data"]["expiraEn"].startswith("2024-05-01T12:30:00")

    @pytest.mark.parametrize(
        "payload",
        [
            {"tipo": "worker"},
            {"idFinca": 42},
            {"idFinca": 42, "tipo": "owner"},
            {"idFinca": 42, "tipo": "worker", "duracionMinutos": 0},
            {"idFinca": 42, "tipo": "worker", "duracionMinutos": -10},
        ],
    )
    def test_generate_code_bad_request(self, client, farm, payload):
        with patch.object(FarmService, "get_farm", new=AsyncMock(return_value=farm)):
            response = client.post("/api/vincular/generar", json=payload)

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_generate_code_unknown_farm(self, client):
        with patch.object(FarmService, "get_farm", new=AsyncMock(return_value=None)):
            response = client.post("/api/vincular/generar", json={"idFinca": 5, "tipo": "worker"})

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Farm with id 5 does not exist"}

    def test_redeem_code(self, client, codes, farm, worker):
        membership = FarmMembership(id_usuario_finca=3, id_usuario=worker.id_usuario, id_finca=42)
        with patch.object(FarmService, "get_farm", new=AsyncMock(return_value=farm)), patch.object(
            UserService, "get_by_auth_id", new=AsyncMock(return_value=worker)
        ), patch.object(MembershipService, "link", new=AsyncMock(return_value=membership)):
            code = client.post(
                "/api/vincular/generar", json={"idFinca": 42, "tipo": "worker"}
            ).json()["data"]["codigo"]

            response = client.post("/api/vincular/verificar", json={"codigo": code})
            again = client.post("/api/vincular/verificar", json={"codigo": code})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["idUsuario"] == worker.id_usuario
        assert body["data"]["idFinca"] == 42
        assert body["data"]["tipo"] == "worker"
        assert body["data"]["vinculacion"]["id_usuario_finca"] == 3
        assert again.status_code == 404

    def test_redeem_with_wrong_role_is_forbidden(self, client, farm, worker):
        with patch.object(FarmService, "get_farm", new=AsyncMock(return_value=farm)), patch.object(
            UserService, "get_by_auth_id", new=AsyncMock(return_value=worker)
        ):
            code = client.post(
                "/api/vincular/generar", json={"idFinca": 42, "tipo": "veterinario"}
            ).json()["data"]["codigo"]
            response = client.post("/api/vincular/verificar", json={"codigo": code})

        assert response.status_code == 403
        listed = client.get("/api/vincular/finca/42").json()["data"]
        assert [item["codigo"] for item in listed] == [code]
        assert listed[0]["tipo"] == "veterinarian"

    def test_redeem_requires_code(self, client):
        response = client.post("/api/vincular/verificar", json={})

        assert response.status_code == 400

    def test_revoke_code(self, client, farm):
        with patch.object(FarmService, "get_farm", new=AsyncMock(return_value=farm)):
            code = client.post(
                "/api/vincular/generar", json={"idFinca": 42, "tipo": "worker"}
            ).json()["data"]["codigo"]

        assert client.delete(f"/api/vincular/codigo/{code}/finca/7").status_code == 404
        response = client.delete(f"/api/vincular/codigo/{code}/finca/42")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get("/api/vincular/finca/42").json()["data"] == []


class TestCacheRoutes:
    async def test_stats(self, client, cache):
        await cache.set("farms_u1_{}", [{"id_finca": 1}], 900)

        body = client.get("/api/cache/stats").json()

        assert body["status"] == "ok"
        assert body["cache"]["memory"]["keys"] >= 1
        assert body["cache"]["remote"]["connected"] is True

    async def test_clear_pattern(self, client, cache):
        await cache.set("farms_u1_{}", [1], 900)
        await cache.set("user_u1_{}", {}, 1800)

        response = client.post("/api/cache/clear", json={"pattern": "farms_"})

        assert response.json()["status"] == "ok"
        assert await cache.get("farms_u1_{}") is None
        assert await cache.get("user_u1_{}") == {}

    async def test_clear_everything(self, client, cache):
        await cache.set("farms_u1_{}", [1], 900)
        await cache.set("user_u1_{}", {}, 1800)

        response = client.post("/api/cache/clear")

        assert response.status_code == 200
        assert await cache.get("farms_u1_{}") is None
        assert await cache.get("user_u1_{}") is None


class TestFarmRoutesCaching:
    def test_farm_list_is_cached_per_caller_and_query(self, client, db, farm):
        db.exec.return_value = MagicMock(all=MagicMock(return_value=[farm]))

        first = client.get("/api/farms/")
        second = client.get("/api/farms/")
        other_query = client.get("/api/farms/?limit=10")

        assert first.status_code == 200
        assert first.json() == second.json()
        assert first.json()[0]["nombre"] == "La Esperanza"
        assert other_query.status_code == 200
        assert db.exec.await_count == 2

    def test_create_farm_invalidates_farm_list(self, client, db, farm):
        db.exec.return_value = MagicMock(all=MagicMock(return_value=[farm]))

        async def assign_id(obj):
            obj.id_finca = 43

        db.refresh.side_effect = assign_id
        client.get("/api/farms/")

        with patch.object(MembershipService, "link", new=AsyncMock()) as link:
            created = client.post("/api/farms/", json={"nombre": "El Roble", "tamano": 35})

        assert created.status_code == 201
        assert created.json()["id_finca"] == 43
        link.assert_awaited_once_with(10, 43, db)

        client.get("/api/farms/")
        assert db.exec.await_count == 2

    def test_failed_update_does_not_invalidate(self, client, db, farm, cache):
        db.exec.return_value = MagicMock(all=MagicMock(return_value=[farm]))
        client.get("/api/farms/")

        db.get.return_value = None
        response = client.put("/api/farms/99", json={"nombre": "Nada"})

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Farm with id 99 not found"}
        client.get("/api/farms/")
        assert db.exec.await_count == 1


class TestFarmMembers:
    @pytest.fixture
    def rows(self, db, farm, worker, veterinarian):
        by_model = {
            Farm: {farm.id_finca: farm},
            User: {worker.id_usuario: worker, veterinarian.id_usuario: veterinarian},
        }

        async def get(model, ident):
            return by_model.get(model, {}).get(ident)

        db.get.side_effect = get
        return by_model

    def test_add_worker(self, client, db, rows, worker, cache):
        membership = FarmMembership(id_usuario_finca=8, id_usuario=worker.id_usuario, id_finca=42)
        with patch.object(MembershipService, "link", new=AsyncMock(return_value=membership)) as link:
            response = client.post("/api/farms/42/workers", json={"id_usuario": worker.id_usuario})

        assert response.status_code == 201
        assert response.json() == {"id_usuario_finca": 8, "id_usuario": 10, "id_finca": 42}
        link.assert_awaited_once_with(worker.id_usuario, 42, db)

    def test_add_worker_with_wrong_role_is_forbidden(self, client, rows, veterinarian):
        with patch.object(MembershipService, "link", new=AsyncMock()) as link:
            response = client.post(
                "/api/farms/42/workers", json={"id_usuario": veterinarian.id_usuario}
            )

        assert response.status_code == 403
        assert response.json()["success"] is False
        link.assert_not_awaited()

    def test_add_veterinarian_to_unknown_farm(self, client, rows, veterinarian):
        response = client.post(
            "/api/farms/99/veterinarians", json={"id_usuario": veterinarian.id_usuario}
        )

        assert response.status_code == 404

    def test_add_unknown_user(self, client, rows):
        response = client.post("/api/farms/42/veterinarians", json={"id_usuario": 999})

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "User 999 does not exist"}

    def test_remove_veterinarian(self, client, db, rows, veterinarian):
        with patch.object(
            MembershipService, "dissociate", new=AsyncMock(return_value=True)
        ) as dissociate:
            response = client.delete(f"/api/farms/42/veterinarians/{veterinarian.id_usuario}")

        assert response.status_code == 200
        assert response.json()["success"] is True
        dissociate.assert_awaited_once_with(veterinarian.id_usuario, 42, db)

    def test_remove_worker_route_ignores_other_roles(self, client, rows, veterinarian):
        with patch.object(MembershipService, "dissociate", new=AsyncMock()) as dissociate:
            response = client.delete(f"/api/farms/42/workers/{veterinarian.id_usuario}")

        assert response.status_code == 404
        dissociate.assert_not_awaited()


class TestAuthentication:
    def test_missing_token_is_unauthorized(self, db):
        app.dependency_overrides[get_db] = lambda: db
        try:
            response = TestClient(app).get("/api/farms/")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
        assert response.json()["success"] is False
