"""
crudkit — HTTP API Tests
==========================

What:  The platform app end to end through httpx's ASGI transport.

What we test:
    ✅ Envelope shape and status codes (201/200/400/401/404/409/413)
    ✅ Bearer authentication in front of resource routes
    ✅ Health probes, request ids, security headers, catch-all 404
    ✅ Restore route on soft- and hard-delete resources
"""

import uuid

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from crudkit.auth import issue_token
from crudkit.middleware import BodySizeLimitMiddleware


class TestHealth:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/health", "/healthz"])
    async def test_liveness(self, client, path):
        response = await client.get(path)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert "timestamp" in body
        assert body["uptime"] >= 0

    @pytest.mark.asyncio
    async def test_readiness(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"


class TestCrossCutting:

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        first = await client.get("/health")
        second = await client.get("/health", headers={"X-Request-ID": "client-chosen"})
        assert len(first.headers["X-Request-ID"]) == 8
        assert second.headers["X-Request-ID"] != "client-chosen"
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/api/invoices")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found"}

    @pytest.mark.asyncio
    async def test_oversized_body(self, client, alice_headers):
        response = await client.post(
            "/api/customers",
            content=b"{" + b" " * 70000 + b"}",
            headers={**alice_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 413
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_streamed_body_is_counted(self):
        app = FastAPI()

        @app.post("/echo")
        async def echo(payload: dict):
            return payload

        app.add_middleware(BodySizeLimitMiddleware, max_body_size=16)

        async def chunks():
            for _ in range(4):
                yield b"12345678"

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
            rejected = await http.post("/echo", content=chunks())
            accepted = await http.post("/echo", json={"a": 1})

        assert rejected.status_code == 413
        assert accepted.status_code == 200
        assert accepted.json() == {"a": 1}


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/customers")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Missing Bearer token"}

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/api/customers", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_token_signed_with_other_secret(self, client, alice):
        token = issue_token(alice.id, secret="someone-elses-secret-0123456789abcdef")
        response = await client.get("/api/customers", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestCustomersApi:

    @pytest.mark.asyncio
    async def test_crud_flow(self, client, alice_headers):
        created = await client.post(
            "/api/customers",
            json={"name": "Acme", "email": "ops@acme.io", "company": "Acme"},
            headers=alice_headers,
        )
        assert created.status_code == 201
        body = created.json()
        assert body["success"] is True
        customer_id = body["data"]["id"]

        fetched = await client.get(f"/api/customers/{customer_id}", headers=alice_headers)
        assert fetched.status_code == 200
        assert fetched.json()["data"]["name"] == "Acme"

        listed = await client.get("/api/customers", params={"search": "acme"}, headers=alice_headers)
        assert listed.status_code == 200
        page = listed.json()["data"]
        assert page["pagination"]["total"] == 1
        assert page["data"][0]["id"] == customer_id

        patched = await client.patch(
            f"/api/customers/{customer_id}", json={"phone": "+1 555 0100"}, headers=alice_headers
        )
        assert patched.json() == {"success": True, "data": {"updated": True}}

        replaced = await client.put(
            f"/api/customers/{customer_id}", json={"name": "Acme Inc"}, headers=alice_headers
        )
        assert replaced.status_code == 200

        deleted = await client.delete(f"/api/customers/{customer_id}", headers=alice_headers)
        assert deleted.json() == {"success": True, "data": {"deleted": True}}

        gone = await client.get(f"/api/customers/{customer_id}", headers=alice_headers)
        assert gone.status_code == 404
        assert gone.json() == {"success": False, "message": "Customer not found"}

    @pytest.mark.asyncio
    async def test_validator_message(self, client, alice_headers):
        response = await client.post("/api/customers", json={"email": "ops@acme.io"}, headers=alice_headers)
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Customer name is required"}

    @pytest.mark.asyncio
    async def test_invalid_id(self, client, alice_headers):
        response = await client.get("/api/customers/12345", headers=alice_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid ID format"

    @pytest.mark.asyncio
    async def test_malformed_json(self, client, alice_headers):
        response = await client.post(
            "/api/customers",
            content=b"{not json",
            headers={**alice_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_other_principal_gets_404(self, client, alice_headers, bob_headers):
        created = await client.post(
            "/api/customers", json={"name": "Acme", "email": "ops@acme.io"}, headers=alice_headers
        )
        customer_id = created.json()["data"]["id"]

        response = await client.get(f"/api/customers/{customer_id}", headers=bob_headers)
        assert response.status_code == 404

        listed = await client.get("/api/customers", headers=bob_headers)
        assert listed.json()["data"]["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_restore_not_enabled(self, client, alice_headers):
        created = await client.post(
            "/api/customers", json={"name": "Acme", "email": "ops@acme.io"}, headers=alice_headers
        )
        customer_id = created.json()["data"]["id"]
        response = await client.post(f"/api/customers/{customer_id}/restore", headers=alice_headers)
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "message": "Soft delete is not enabled for this resource",
        }

    @pytest.mark.asyncio
    async def test_pagination_params(self, client, alice_headers):
        for i in range(3):
            await client.post(
                "/api/customers", json={"name": f"C{i}", "email": f"c{i}@example.com"}, headers=alice_headers
            )
        response = await client.get("/api/customers", params={"limit": "2", "page": "2"}, headers=alice_headers)
        page = response.json()["data"]
        assert len(page["data"]) == 1
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False

    @pytest.mark.asyncio
    async def test_page_beyond_any_offset(self, client, alice_headers):
        await client.post("/api/customers", json={"name": "Acme", "email": "ops@acme.io"}, headers=alice_headers)
        response = await client.get(
            "/api/customers", params={"page": "99999999999999999999"}, headers=alice_headers
        )
        assert response.status_code == 200
        page = response.json()["data"]
        assert page["data"] == []
        assert page["pagination"]["total"] == 1
        assert page["pagination"]["has_next"] is False


class TestExpensesApi:

    @pytest.mark.asyncio
    async def test_soft_delete_and_restore(self, client, alice_headers):
        created = await client.post(
            "/api/expenses",
            json={"vendor": "AWS", "total": 12.5, "status": "paid", "date": "2024-03-01T00:00:00Z"},
            headers=alice_headers,
        )
        assert created.status_code == 201
        expense_id = created.json()["data"]["id"]

        assert (await client.delete(f"/api/expenses/{expense_id}", headers=alice_headers)).status_code == 200
        assert (await client.get(f"/api/expenses/{expense_id}", headers=alice_headers)).status_code == 404
        assert (await client.delete(f"/api/expenses/{expense_id}", headers=alice_headers)).status_code == 404

        with_deleted = await client.get("/api/expenses", params={"includeDeleted": "true"}, headers=alice_headers)
        assert with_deleted.json()["data"]["pagination"]["total"] == 1

        restored = await client.post(f"/api/expenses/{expense_id}/restore", headers=alice_headers)
        assert restored.json() == {"success": True, "data": {"restored": True}}

        fetched = await client.get(f"/api/expenses/{expense_id}", headers=alice_headers)
        assert fetched.status_code == 200
        assert fetched.json()["data"]["vendor"] == "AWS"

    @pytest.mark.asyncio
    async def test_status_filter(self, client, alice_headers):
        for status in ("paid", "pending"):
            await client.post("/api/expenses", json={"vendor": status, "status": status}, headers=alice_headers)
        response = await client.get("/api/expenses", params={"status": "pending"}, headers=alice_headers)
        records = response.json()["data"]["data"]
        assert [r["vendor"] for r in records] == ["pending"]


class TestUsersApi:

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, alice_headers):
        payload = {"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"}
        first = await client.post("/api/users", json=payload, headers=alice_headers)
        assert first.status_code == 201
        assert first.json()["data"]["email"] == "ada@example.com"
        assert first.json()["data"]["name"] == "Ada Lovelace"

        second = await client.post("/api/users", json=payload, headers=alice_headers)
        assert second.status_code == 409
        assert second.json() == {"success": False, "message": "email already exists"}

    @pytest.mark.asyncio
    async def test_other_principal_cannot_change_an_account(self, client, alice_headers, bob_headers):
        created = await client.post(
            "/api/users",
            json={"email": "ada@example.com", "first_name": "Ada", "last_name": "Lovelace"},
            headers=alice_headers,
        )
        user_id = created.json()["data"]["id"]
        own_headers = {"Authorization": f"Bearer {issue_token(user_id)}"}

        escalated = await client.patch(f"/api/users/{user_id}", json={"role": "admin"}, headers=bob_headers)
        assert escalated.status_code == 404
        assert (await client.delete(f"/api/users/{user_id}", headers=bob_headers)).status_code == 404

        own = await client.patch(f"/api/users/{user_id}", json={"role": "admin"}, headers=own_headers)
        assert own.status_code == 200

        record = (await client.get(f"/api/users/{user_id}", headers=bob_headers)).json()["data"]
        assert record["role"] == "user"
        assert (await client.delete(f"/api/users/{user_id}", headers=own_headers)).status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, alice_headers):
        response = await client.get(f"/api/users/{uuid.uuid4()}", headers=alice_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "User not found"
