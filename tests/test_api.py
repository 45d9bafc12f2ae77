"""API tests: request/response contract and error envelope."""

import base64

import pytest
from httpx import AsyncClient

from tests.factories import make_huge_png

OWNER = {"X-Owner-Id": "owner-1"}


async def upload(client: AsyncClient, data: bytes, mime: str = "image/jpeg", owner: dict = OWNER):
    return await client.post(
        "/analysis/upload", files={"image": ("meal.jpg", data, mime)}, headers=owner
    )


class TestHealthEndpoint:
    """Tests for /health and /."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["mongodb"] is None
        assert data["storage"] == {"backend": "local", "healthy": True}
        assert data["provider"]["provider"] == "ollama/llava:7b"
        assert data["provider"]["healthy"] is True
        assert data["cache"]["entries"] == 0

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["health"] == "/health"


class TestAnalysisEndpoints:
    """Tests for /analysis."""

    @pytest.mark.asyncio
    async def test_upload(self, client, jpeg_bytes):
        response = await upload(client, jpeg_bytes)

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["foodName"] == "Grilled chicken with rice"
        assert data["result"]["calories"] == 520
        assert data["result"]["fiber"] == 3
        assert data["cached"] is False
        assert data["created"] is True
        assert data["provider"] == "ollama"
        assert data["model"] == "llava:7b"
        assert data["imageUrl"].startswith("/images/optimized/")
        assert data["thumbnailUrl"].startswith("/images/thumbnail/")
        assert data["quota"]["exceeded"] is False
        assert len(data["contentHash"]) == 64

    @pytest.mark.asyncio
    async def test_repeat_upload_is_cached(self, client, ollama_stub, jpeg_bytes):
        first = (await upload(client, jpeg_bytes)).json()
        second = (await upload(client, jpeg_bytes)).json()

        assert ollama_stub.generate_calls == 1
        assert second["cached"] is True
        assert second["created"] is False
        assert second["result"] == first["result"]
        assert second["assetId"] == first["assetId"]

    @pytest.mark.asyncio
    async def test_base64(self, client, png_bytes):
        payload = {"imageData": f"data:image/png;base64,{base64.b64encode(png_bytes).decode()}"}

        response = await client.post("/analysis/base64", json=payload, headers=OWNER)

        assert response.status_code == 200
        assert response.json()["result"]["foodName"] == "Grilled chicken with rice"

    @pytest.mark.asyncio
    async def test_base64_invalid(self, client):
        response = await client.post(
            "/analysis/base64", json={"imageData": "data:image/png;base64,@@@@"}, headers=OWNER
        )

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_missing_owner(self, client, jpeg_bytes):
        response = await upload(client, jpeg_bytes, owner={})

        assert response.status_code == 422
        assert "X-Owner-Id" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_unsupported_type(self, client):
        response = await upload(client, b"GIF89a-not-allowed", mime="image/gif")

        body = response.json()
        assert response.status_code == 422
        assert body["code"] == "VALIDATION_ERROR"
        assert body["retryable"] is False

    @pytest.mark.asyncio
    async def test_oversized_canvas(self, client):
        """A small PNG declaring a huge canvas is a typed 422, not a 500."""
        response = await upload(client, make_huge_png(), mime="image/png")

        body = response.json()
        assert response.status_code == 422
        assert body["code"] == "VALIDATION_ERROR"
        assert body["retryable"] is False

    @pytest.mark.asyncio
    async def test_missing_file(self, client):
        response = await client.post("/analysis/upload", headers=OWNER)

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_provider_failure(self, client, ollama_stub, jpeg_bytes):
        """Backend errors come back as retryable 502s."""
        ollama_stub.status_code = 500

        response = await upload(client, jpeg_bytes)

        body = response.json()
        assert response.status_code == 502
        assert body["code"] == "PROVIDER_CALL_FAILED"
        assert body["retryable"] is True
        assert body["details"]["upstream_status"] == 500

    @pytest.mark.asyncio
    async def test_history(self, client, jpeg_bytes, png_bytes):
        await upload(client, jpeg_bytes)
        await upload(client, png_bytes, mime="image/png")
        await upload(client, jpeg_bytes, owner={"X-Owner-Id": "owner-2"})

        response = await client.get("/analysis/history", headers=OWNER)

        assert response.status_code == 200
        history = response.json()
        assert len(history) == 2
        assert {"assetId", "contentHash", "result", "provider", "createdAt"} <= set(history[0])

    @pytest.mark.asyncio
    async def test_history_limit_validated(self, client):
        response = await client.get("/analysis/history?limit=0", headers=OWNER)
        assert response.status_code == 422


class TestImageEndpoints:
    """Tests for /images."""

    @pytest.mark.asyncio
    async def test_serves_stored_variants(self, client, jpeg_bytes):
        data = (await upload(client, jpeg_bytes)).json()

        response = await client.get(data["imageUrl"])

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert "immutable" in response.headers["cache-control"]

        original = await client.get(f"/images/original/{data['contentHash']}.jpg")
        assert original.content == jpeg_bytes

    @pytest.mark.asyncio
    async def test_unknown_image(self, client):
        response = await client.get("/images/original/" + "0" * 64 + ".jpg")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_size(self, client):
        response = await client.get("/images/huge/abc.jpg")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete(self, client, jpeg_bytes):
        asset_id = (await upload(client, jpeg_bytes)).json()["assetId"]

        other = await client.delete(f"/images/{asset_id}", headers={"X-Owner-Id": "owner-2"})
        mine = await client.delete(f"/images/{asset_id}", headers=OWNER)

        assert other.status_code == 404
        assert mine.status_code == 204

    @pytest.mark.asyncio
    async def test_stats(self, client, jpeg_bytes):
        await upload(client, jpeg_bytes)

        response = await client.get("/images/stats", headers=OWNER)

        data = response.json()
        assert response.status_code == 200
        assert data["backend"] == "local"
        assert data["total_images"] == 1
        assert data["bytes_by_size"]["original"] == len(jpeg_bytes)
        assert data["quota"]["usedBytes"] == data["total_bytes"]


class TestProviderEndpoints:
    """Tests for /providers."""

    @pytest.mark.asyncio
    async def test_list(self, client):
        response = await client.get("/providers")

        configs = response.json()
        assert response.status_code == 200
        assert len(configs) == 1
        assert configs[0]["providerKind"] == "ollama"
        assert configs[0]["isActive"] is True

    @pytest.mark.asyncio
    async def test_create_never_returns_credential(self, client):
        response = await client.post(
            "/providers",
            json={"providerKind": "openai", "modelName": "gpt-4o", "apiKey": "sk-secret"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["hasCredential"] is True
        assert body["isActive"] is False
        assert "sk-secret" not in response.text
        assert "encryptedCredential" not in body

    @pytest.mark.asyncio
    async def test_activate_switches_provider(self, client):
        created = (
            await client.post(
                "/providers",
                json={"providerKind": "gemini", "modelName": "gemini-2.5-flash", "apiKey": "g"},
            )
        ).json()
        before = (await client.get("/providers/active")).json()

        response = await client.post(f"/providers/{created['id']}/activate")

        active = response.json()
        assert response.status_code == 200
        assert active["provider"] == "gemini"
        assert active["configId"] == created["id"]
        assert active["version"] > before["version"]
        listed = (await client.get("/providers")).json()
        assert sum(c["isActive"] for c in listed) == 1

    @pytest.mark.asyncio
    async def test_update(self, client):
        config_id = (await client.get("/providers/active")).json()["configId"]

        response = await client.patch(
            f"/providers/{config_id}", json={"promptTemplate": "List every food."}
        )

        assert response.status_code == 200
        assert response.json()["promptTemplate"] == "List every food."

    @pytest.mark.asyncio
    async def test_rotate_credential(self, client):
        config_id = (await client.get("/providers/active")).json()["configId"]

        response = await client.put(
            f"/providers/{config_id}/credential", json={"apiKey": "new-key"}
        )

        assert response.status_code == 200
        assert response.json()["hasCredential"] is True

    @pytest.mark.asyncio
    async def test_unknown_config(self, client):
        response = await client.get("/providers/missing")

        assert response.status_code == 404
        assert response.json()["details"] == {"resource": "Provider config", "id": "missing"}

    @pytest.mark.asyncio
    async def test_invalid_create(self, client):
        response = await client.post(
            "/providers", json={"providerKind": "claude", "modelName": "x"}
        )
        assert response.status_code == 422
