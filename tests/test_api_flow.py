"""
End-to-end API tests: onboarding, inventory, clients, matching, pipeline and gating.
"""

from datetime import datetime, timedelta

import pytest
from pymongo.errors import PyMongoError

from crm_core.billing.models import SubscriptionStatus
from crm_core.clients.db_service import ClientDBService

APARTMENT = {
    "title": "Apartamento 2 quartos no Centro",
    "transaction_type": "SALE",
    "property_type": "APARTMENT",
    "bedrooms": 2,
    "price": 350000,
    "city": "Florianópolis",
    "neighborhood": "Centro",
}

BUYER = {
    "name": "João Pereira",
    "phone": "(48) 99876-5432",
    "desired_transaction_type": "SALE",
    "desired_bedrooms_min": 2,
    "desired_price_max": 400000,
    "city": "florianopolis",
}


@pytest.fixture
def headers(onboarded):
    return onboarded["headers"]


class TestOnboarding:
    def test_creates_pipeline_and_trial(self, api, onboarded, headers):
        assert onboarded["onboarding"]["stages_created"] == 5
        assert onboarded["tenant_id"].startswith("imobsol_")

        stages = api.get("/pipeline/stages", headers=headers).json()
        assert [s["name"] for s in stages] == [
            "Novo Lead",
            "Em Contato",
            "Visita Agendada",
            "Negociação",
            "Fechado",
        ]
        assert stages[-1]["is_final"] is True

        subscription = api.get("/billing/subscription", headers=headers).json()
        assert subscription["status"] == "TRIAL"
        assert subscription["trial_days_left"] == 7
        assert subscription["price_formatted"] == "R$ 49,00"

    def test_subdomain_taken(self, api, onboarded):
        check = api.get("/platform/tenants/check/subdomain/imobsol").json()
        assert check["available"] is False

        response = api.post(
            "/platform/onboarding",
            json={
                "user_name": "Outra Pessoa",
                "user_email": "outra@exemplo.com.br",
                "password": "Senha-Forte-2026",
                "tenant_name": "Outra Imobiliária",
                "subdomain": "imobsol",
            },
        )
        assert response.status_code == 400

    def test_weak_password_rejected(self, api):
        response = api.post(
            "/platform/onboarding",
            json={
                "user_name": "Maria Souza",
                "user_email": "maria@imobsol.com.br",
                "password": "12345678",
                "tenant_name": "Imobiliária Sol",
            },
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("subdomain, status_code", [("admin", 400), ("Sol_Imóveis", 422)])
    def test_subdomain_must_be_usable(self, api, subdomain, status_code):
        assert api.get(f"/platform/tenants/check/subdomain/{subdomain}").json()["available"] is False

        response = api.post(
            "/platform/onboarding",
            json={
                "user_name": "Maria Souza",
                "user_email": "maria@imobsol.com.br",
                "password": "Senha-Forte-2026",
                "tenant_name": "Imobiliária Sol",
                "subdomain": subdomain,
            },
        )
        assert response.status_code == status_code

    def test_me(self, api, headers):
        me = api.get("/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["role"] == "OWNER"


def test_unknown_tenant_is_404(api):
    response = api.get("/properties", headers={"X-Tenant-ID": "nao_existe"})
    assert response.status_code == 404


def test_requests_without_token_are_rejected(api, onboarded):
    response = api.get("/properties", headers={"X-Tenant-ID": onboarded["tenant_id"]})
    assert response.status_code == 401


def test_options_expose_labels(api):
    options = api.get("/platform/options").json()
    assert options["property_types"]["APARTMENT"] == "Apartamento"
    assert options["subscription_statuses"]["PAST_DUE"] == "Pagamento pendente"


class TestProperties:
    def test_create_and_list(self, api, headers):
        created = api.post("/properties", json=APARTMENT, headers=headers)
        assert created.status_code == 201, created.text
        body = created.json()
        assert body["price"] == 35_000_000
        assert body["price_formatted"] == "R$ 350.000,00"
        assert body["property_type_label"] == "Apartamento"

        listing = api.get("/properties", params={"search": "centro"}, headers=headers).json()
        assert listing["count"] == 1
        assert listing["data"][0]["property_id"] == body["property_id"]

    def test_status_filter(self, api, headers):
        api.post("/properties", json=APARTMENT, headers=headers)
        api.post("/properties", json={**APARTMENT, "title": "Casa vendida", "status": "SOLD"}, headers=headers)

        assert api.get("/properties", headers=headers).json()["count"] == 1
        assert api.get("/properties", params={"status": "all"}, headers=headers).json()["count"] == 2
        assert api.get("/properties", params={"status": "sold"}, headers=headers).json()["count"] == 1
        assert api.get("/properties", params={"status": "bogus"}, headers=headers).status_code == 400

    def test_soft_delete(self, api, headers):
        property_id = api.post("/properties", json=APARTMENT, headers=headers).json()["property_id"]

        assert api.delete(f"/properties/{property_id}", headers=headers).status_code == 204
        assert api.get(f"/properties/{property_id}", headers=headers).status_code == 404
        assert api.get("/properties", params={"status": "all"}, headers=headers).json()["count"] == 0

    def test_invalid_price_rejected(self, api, headers):
        response = api.post("/properties", json={**APARTMENT, "price": 0}, headers=headers)
        assert response.status_code == 422

    def test_optional_fields_can_be_cleared(self, api, headers):
        created = api.post("/properties", json={**APARTMENT, "bathrooms": 1, "area_m2": 60}, headers=headers).json()

        updated = api.patch(
            f"/properties/{created['property_id']}",
            json={"neighborhood": None, "bathrooms": None, "area_m2": None},
            headers=headers,
        )

        assert updated.status_code == 200, updated.text
        body = updated.json()
        assert (body["neighborhood"], body["bathrooms"], body["area_m2"]) == (None, None, None)

    def test_required_fields_cannot_be_cleared(self, api, headers):
        property_id = api.post("/properties", json=APARTMENT, headers=headers).json()["property_id"]

        response = api.patch(f"/properties/{property_id}", json={"price": None}, headers=headers)

        assert response.status_code == 422


class TestClients:
    def test_create_lands_in_first_stage(self, api, headers):
        created = api.post("/clients", json=BUYER, headers=headers)
        assert created.status_code == 201, created.text
        body = created.json()
        assert body["phone_formatted"] == "(48) 99876-5432"
        assert body["desired_price_max"] == 40_000_000
        assert body["stage"]["name"] == "Novo Lead"

    def test_duplicate_phone_conflicts(self, api, headers):
        api.post("/clients", json=BUYER, headers=headers)

        duplicate = api.post("/clients", json={**BUYER, "name": "Outro", "phone": "48998765432"}, headers=headers)

        assert duplicate.status_code == 409

    def test_phone_is_free_again_after_delete(self, api, headers):
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]
        assert api.delete(f"/clients/{client_id}", headers=headers).status_code == 204

        assert api.post("/clients", json=BUYER, headers=headers).status_code == 201

    def test_inverted_ranges_rejected(self, api, headers):
        response = api.post(
            "/clients",
            json={**BUYER, "desired_price_min": 500000, "desired_price_max": 400000},
            headers=headers,
        )
        assert response.status_code == 422

        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]
        update = api.patch(f"/clients/{client_id}", json={"desired_price_min": 500000}, headers=headers)
        assert update.status_code == 400

    def test_invalid_phone_rejected(self, api, headers):
        response = api.post("/clients", json={**BUYER, "phone": "123"}, headers=headers)
        assert response.status_code == 422

    def test_clear_email(self, api, headers):
        client_id = api.post("/clients", json={**BUYER, "email": "joao@exemplo.com"}, headers=headers).json()[
            "client_id"
        ]

        updated = api.patch(f"/clients/{client_id}", json={"email": ""}, headers=headers)

        assert updated.status_code == 200
        assert updated.json()["email"] is None

    @pytest.mark.parametrize("email", ["a@", "@", "foo@@", "x@y"])
    def test_invalid_email_rejected(self, api, headers, email):
        response = api.post("/clients", json={**BUYER, "email": email}, headers=headers)
        assert response.status_code == 422

    def test_clearing_criteria_widens_matches(self, api, headers):
        penthouse = api.post(
            "/properties",
            json={**APARTMENT, "title": "Cobertura", "price": 900000, "city": "Balneário Camboriú"},
            headers=headers,
        ).json()
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]
        assert api.get(f"/clients/{client_id}/matches", headers=headers).json() == []

        updated = api.patch(
            f"/clients/{client_id}",
            json={"desired_price_max": None, "city": None},
            headers=headers,
        )

        assert updated.status_code == 200, updated.text
        assert updated.json()["desired_price_max"] is None
        assert updated.json()["city"] is None
        matches = api.get(f"/clients/{client_id}/matches", headers=headers).json()
        assert [p["property_id"] for p in matches] == [penthouse["property_id"]]

    @pytest.mark.parametrize("field", ["name", "phone", "desired_transaction_type", "stage_id"])
    def test_required_fields_cannot_be_cleared(self, api, headers, field):
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]

        response = api.patch(f"/clients/{client_id}", json={field: None}, headers=headers)

        assert response.status_code == 422


class TestMatching:
    def test_matches_grouped_by_client(self, api, headers):
        cheap = api.post("/properties", json=APARTMENT, headers=headers).json()
        api.post("/properties", json={**APARTMENT, "title": "Cobertura de luxo", "price": 900000}, headers=headers)
        api.post("/properties", json={**APARTMENT, "title": "Apto para alugar", "transaction_type": "RENT", "price": 2500}, headers=headers)
        client = api.post("/clients", json=BUYER, headers=headers).json()

        matching = api.get("/matching", headers=headers).json()

        assert matching["total_matches"] == 1
        assert matching["groups"][0]["client"]["client_id"] == client["client_id"]
        assert [p["property_id"] for p in matching["groups"][0]["properties"]] == [cheap["property_id"]]

        from_client = api.get(f"/clients/{client['client_id']}/matches", headers=headers).json()
        assert [p["property_id"] for p in from_client] == [cheap["property_id"]]

        from_property = api.get(f"/properties/{cheap['property_id']}/matches", headers=headers).json()
        assert [c["client_id"] for c in from_property] == [client["client_id"]]

    def test_search_filters_matches(self, api, headers):
        api.post("/properties", json=APARTMENT, headers=headers)
        api.post("/clients", json=BUYER, headers=headers)

        assert api.get("/matching", params={"search": "joão"}, headers=headers).json()["total_matches"] == 1
        assert api.get("/matching", params={"search": "maria"}, headers=headers).json()["total_matches"] == 0

    def test_dashboard(self, api, headers):
        api.post("/properties", json=APARTMENT, headers=headers)
        api.post("/properties", json={**APARTMENT, "title": "Apto vendido", "status": "SOLD"}, headers=headers)
        api.post("/clients", json=BUYER, headers=headers)

        stats = api.get("/dashboard/stats", headers=headers).json()
        assert stats == {"total_clients": 1, "total_properties": 2, "active_properties": 1, "total_matches": 1}

        by_stage = api.get("/dashboard/clients-by-stage", headers=headers).json()
        assert [s["client_count"] for s in by_stage] == [1, 0, 0, 0, 0]

        recent = api.get("/dashboard/recent-matches", headers=headers).json()
        assert recent[0]["client_name"] == "João Pereira"
        assert recent[0]["property_price_formatted"] == "R$ 350.000,00"


class TestPipeline:
    def test_move_client_between_stages(self, api, headers):
        stages = api.get("/pipeline/stages", headers=headers).json()
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]

        moved = api.post(
            "/pipeline/moves",
            json={"client_id": client_id, "over_id": stages[2]["stage_id"]},
            headers=headers,
        )

        assert moved.status_code == 200, moved.text
        assert moved.json()["moved"] is True
        board = api.get("/pipeline", headers=headers).json()
        columns = {c["stage"]["stage_id"]: [cl["client_id"] for cl in c["clients"]] for c in board["columns"]}
        assert columns[stages[2]["stage_id"]] == [client_id]
        assert columns[stages[0]["stage_id"]] == []

    def test_failed_save_is_service_unavailable(self, api, headers, mocker):
        stages = api.get("/pipeline/stages", headers=headers).json()
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]
        mocker.patch.object(ClientDBService, "update_stage", side_effect=PyMongoError("primary stepped down"))

        response = api.post(
            "/pipeline/moves",
            json={"client_id": client_id, "over_id": stages[1]["stage_id"]},
            headers=headers,
        )

        assert response.status_code == 503
        board = api.get("/pipeline", headers=headers).json()
        assert [c["client_id"] for c in board["columns"][0]["clients"]] == [client_id]

    def test_drop_on_same_stage_is_noop(self, api, headers):
        stages = api.get("/pipeline/stages", headers=headers).json()
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]

        moved = api.post(
            "/pipeline/moves",
            json={"client_id": client_id, "over_id": stages[0]["stage_id"]},
            headers=headers,
        )

        assert moved.json()["moved"] is False

    def test_set_stage_to_unknown_stage(self, api, headers):
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]

        response = api.patch(f"/pipeline/clients/{client_id}/stage", json={"stage_id": "stage_x"}, headers=headers)

        assert response.status_code == 400

    def test_stage_in_use_cannot_be_deleted(self, api, headers):
        first = api.get("/pipeline/stages", headers=headers).json()[0]
        api.post("/clients", json=BUYER, headers=headers)

        assert api.delete(f"/pipeline/stages/{first['stage_id']}", headers=headers).status_code == 409

    def test_add_and_reorder_stages(self, api, headers):
        created = api.post("/pipeline/stages", json={"name": "Pós-venda"}, headers=headers)
        assert created.status_code == 201
        assert created.json()["position"] == 6

        ids = [s["stage_id"] for s in api.get("/pipeline/stages", headers=headers).json()]
        reordered = api.put("/pipeline/stages/order", json={"stage_ids": list(reversed(ids))}, headers=headers)
        assert reordered.status_code == 200

        assert [s["stage_id"] for s in api.get("/pipeline/stages", headers=headers).json()] == list(reversed(ids))
        assert api.put("/pipeline/stages/order", json={"stage_ids": ids[:2]}, headers=headers).status_code == 400


class TestSubscriptionGating:
    @pytest.fixture
    def expire_trial(self, run, platform_db, onboarded):
        def _expire(status=SubscriptionStatus.TRIAL):
            run(
                platform_db.subscriptions.update_one(
                    {"tenant_id": onboarded["tenant_id"]},
                    {"$set": {"status": status, "trial_ends_at": datetime.utcnow() - timedelta(days=1)}},
                )
            )

        return _expire

    def test_expired_trial_blocks_writes_but_not_reads(self, api, headers, expire_trial):
        expire_trial()

        blocked = api.post("/properties", json=APARTMENT, headers=headers)

        assert blocked.status_code == 402
        assert api.get("/properties", headers=headers).status_code == 200
        assert api.get("/billing/subscription", headers=headers).json()["is_active"] is False

    def test_canceled_subscription_blocks_pipeline_moves(self, api, headers, expire_trial):
        stages = api.get("/pipeline/stages", headers=headers).json()
        client_id = api.post("/clients", json=BUYER, headers=headers).json()["client_id"]
        expire_trial(SubscriptionStatus.CANCELED)

        response = api.post(
            "/pipeline/moves",
            json={"client_id": client_id, "over_id": stages[1]["stage_id"]},
            headers=headers,
        )

        assert response.status_code == 402


class TestUsers:
    def test_owner_creates_collaborator(self, api, headers, onboarded):
        created = api.post(
            "/auth/users",
            json={"name": "Carlos Lima", "email": "carlos@imobsol.com.br", "password": "Corretor-2026!", "role": "COLLABORATOR"},
            headers=headers,
        )
        assert created.status_code == 201, created.text

        login = api.post(
            "/auth/login",
            json={"email": "carlos@imobsol.com.br", "password": "Corretor-2026!"},
            headers={"X-Tenant-ID": onboarded["tenant_id"]},
        )
        assert login.status_code == 200

        collaborator_headers = {
            "X-Tenant-ID": onboarded["tenant_id"],
            "Authorization": f"Bearer {login.json()['access_token']}",
        }
        assert api.get("/audit", headers=collaborator_headers).status_code == 403
        assert api.get("/audit", headers=headers).status_code == 200

        collaborators = api.get("/auth/users", params={"role": "COLLABORATOR"}, headers=headers).json()
        assert collaborators["count"] == 1
        assert collaborators["data"][0]["email"] == "carlos@imobsol.com.br"
        assert api.get("/auth/users", headers=headers).json()["count"] == 2

    def test_wrong_password(self, api, onboarded):
        response = api.post(
            "/auth/login",
            json={"email": "maria@imobsol.com.br", "password": "errada-123"},
            headers={"X-Tenant-ID": onboarded["tenant_id"]},
        )
        assert response.status_code == 401


class TestPlatformAdmin:
    def test_platform_status_requires_admin_key(self, api, configure, onboarded):
        configure(platform_admin_api_key="admin-key")

        assert api.get("/platform/status").status_code == 403

        platform = api.get("/platform/status", headers={"X-Platform-Admin-Key": "admin-key"})
        assert platform.status_code == 200
        assert platform.json()["active_tenants"] == 1
        assert platform.json()["subscriptions"]["TRIAL"] == 1

    def test_requires_admin_key(self, api, configure, onboarded):
        configure(platform_admin_api_key="admin-key")

        assert api.get("/platform/tenants").status_code == 403
        assert api.get("/platform/tenants", headers={"X-Platform-Admin-Key": "wrong"}).status_code == 403

        listing = api.get("/platform/tenants", headers={"X-Platform-Admin-Key": "admin-key"})
        assert listing.status_code == 200
        assert [t["tenant_id"] for t in listing.json()["tenants"]] == [onboarded["tenant_id"]]

    def test_search_by_name_or_subdomain(self, api, configure, onboarded):
        configure(platform_admin_api_key="admin-key")
        admin = {"X-Platform-Admin-Key": "admin-key"}

        assert api.get("/platform/tenants", params={"search": "IMOBSOL"}, headers=admin).json()["total"] == 1
        assert api.get("/platform/tenants", params={"search": "outra"}, headers=admin).json()["total"] == 0

    def test_suspended_tenant_is_unavailable(self, api, configure, onboarded, headers):
        configure(platform_admin_api_key="admin-key")

        updated = api.patch(
            f"/platform/tenants/{onboarded['tenant_id']}",
            json={"status": "suspended", "status_reason": "Pagamento em atraso"},
            headers={"X-Platform-Admin-Key": "admin-key"},
        )

        assert updated.status_code == 200
        assert api.get("/properties", headers=headers).status_code == 503


def test_audit_trail_records_writes(api, headers):
    property_id = api.post("/properties", json=APARTMENT, headers=headers).json()["property_id"]

    logs = api.get("/audit", params={"table_name": "properties"}, headers=headers).json()

    assert logs["count"] == 1
    assert logs["data"][0]["record_id"] == property_id
    assert logs["data"][0]["action"] == "create"
