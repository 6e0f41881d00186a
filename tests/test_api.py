"""HTTP 레이어 테스트 — ASGITransport + in-memory DB 의존성 override."""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx
import pytest
import pytest_asyncio

import database
from api.main import app
from api.routers import analyze
from conftest import meta_product
from database import get_db

ORDER_ID = "5f1e2d3c4b5a69788796a5b4"


@pytest_asyncio.fixture
async def client(session_maker, db_engine, monkeypatch):
    async def override_get_db():
        async with session_maker() as s:
            yield s

    monkeypatch.setattr(database, "engine", db_engine)
    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _create_meta(client) -> dict:
    resp = await client.post("/api/schema/products", json=meta_product())
    assert resp.status_code == 201
    return resp.json()


# ── health / models ──

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["database"] == "connected"
    assert body["configured_models"] == 0
    assert body["default_model"] == "claude-sonnet-4-20250514"


@pytest.mark.asyncio
async def test_models_listing(client, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    resp = await client.get("/api/models")
    configured = {m["provider"]: m["configured"] for m in resp.json()["models"]}
    assert configured["openai"] is True
    assert configured["anthropic"] is False


@pytest.mark.asyncio
async def test_ai_test_without_key_is_503(client):
    resp = await client.post("/api/ai-test", json={"prompt": "hello"})
    assert resp.status_code == 503
    assert "ANTHROPIC_API_KEY" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_ai_test_empty_prompt_is_400(client):
    resp = await client.post("/api/ai-test", json={"prompt": ""})
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("prompt:")


# ── campaigns ──

@pytest.mark.asyncio
async def test_tactics_endpoint(client):
    resp = await client.post("/api/tactics", json={"lineItems": [
        {"product": "Meta", "subProduct": "Link Click"},
        {"product": "Meta", "subProduct": "Link Click"},
    ]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalTactics"] == 1
    assert body["tactics"][0]["name"] == "Meta-LinkClick"


@pytest.mark.asyncio
async def test_lumina_rejects_bad_order_id(client):
    resp = await client.post("/api/lumina", json={"orderId": "123"})
    assert resp.status_code == 400
    resp = await client.post("/api/lumina", json={})
    assert resp.status_code == 400


# ── analyze ──

@pytest.mark.asyncio
async def test_analyze_falls_back_and_persists(client):
    product = await _create_meta(client)
    payload = {
        "campaignData": {"id": ORDER_ID, "name": "Spring Launch"},
        "companyInfo": {"name": "Acme", "objectives": "drive site traffic"},
        "uploadedFiles": {
            "Meta-LinkClick": [{
                "name": "report.csv",
                "headers": ["Impressions", "Clicks"],
                "data": [{"Impressions": "1000", "Clicks": "25"}],
            }],
        },
        "aiConfig": {"tone": "concise", "productId": product["id"]},
    }
    resp = await client.post("/api/analyze", json=payload)
    assert resp.status_code == 200
    body = resp.json()
    analysis = body["analysis"]
    assert analysis["usedFallback"] is True
    assert "drive site traffic" in analysis["executiveSummary"]

    stored = await client.get(f"/api/analyses/{body['analysisId']}")
    assert stored.status_code == 200
    assert stored.json()["campaignName"] == "Spring Launch"
    assert stored.json()["tone"] == "concise"

    assert (await client.get("/api/analyses/9999")).status_code == 404


@pytest.mark.asyncio
async def test_upload_match(client):
    await _create_meta(client)
    csv_body = b"Date,Impressions,Clicks,Spend\n2024-03-01,1000,20,15.50\n"
    resp = await client.post(
        "/api/uploads/match",
        files={"file": ("report-meta-facebook-link-click-campaign.csv", csv_body, "text/csv")},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["rowCount"] == 1
    assert body["filenameMatches"][0]["score"] == 100
    assert body["filenameMatches"][0]["table"] == "Facebook Link Click"
    assert body["headerMatches"][0]["similarity"] == 1.0


@pytest.mark.asyncio
async def test_upload_match_empty_file(client):
    resp = await client.post("/api/uploads/match", files={"file": ("empty.csv", b"", "text/csv")})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_upload_match_rejects_oversized_file(client, monkeypatch):
    monkeypatch.setattr(analyze, "MAX_UPLOAD_BYTES", 32)
    csv_body = b"Date,Impressions,Clicks\n" + b"2024-03-01,1000,20\n" * 4
    resp = await client.post("/api/uploads/match", files={"file": ("big.csv", csv_body, "text/csv")})
    assert resp.status_code == 400
    assert "exceeds" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_analyze_uses_each_tactics_product(client):
    meta = await _create_meta(client)
    sem = (await client.post("/api/schema/products", json={"name": "SEM"})).json()
    payload = {
        "campaignData": {"name": "Spring Launch"},
        "tactics": [
            {"name": "Meta-LinkClick", "productId": meta["id"], "subproductId": meta["subproducts"][0]["id"]},
            {"name": "SEM-Google", "productId": sem["id"], "product": "SEM"},
        ],
    }
    resp = await client.post("/api/analyze", json=payload)
    assert resp.status_code == 200
    assert resp.json()["analysis"]["usedFallback"] is True

    payload["tactics"].append({"name": "Ghost", "productId": 9999})
    assert (await client.post("/api/analyze", json=payload)).status_code == 404


# ── schema ──

@pytest.mark.asyncio
async def test_product_crud(client):
    product = await _create_meta(client)
    assert [s["slug"] for s in product["subproducts"]] == ["link-click", "video-views"]
    assert product["benchmarks"][0]["metric_name"] == "ctr"

    dup = await client.post("/api/schema/products", json={"name": "Meta"})
    assert dup.status_code == 400

    listed = await client.get("/api/schema/products")
    assert [p["name"] for p in listed.json()] == ["Meta"]

    updated = await client.put(f"/api/schema/products/{product['id']}", json={"notes": "Paid social"})
    assert updated.json()["notes"] == "Paid social"

    deleted = await client.delete(f"/api/schema/products/{product['id']}")
    assert deleted.json() == {"deleted": True, "id": product["id"]}
    assert (await client.get(f"/api/schema/products/{product['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_child_entities(client):
    product = await _create_meta(client)
    sub = await client.post("/api/schema/subproducts", json={"product_id": product["id"], "name": "Lead Gen"})
    assert sub.status_code == 201
    assert sub.json()["slug"] == "lead-gen"

    tactic = await client.post("/api/schema/tactic-types", json={
        "subproduct_id": sub.json()["id"], "name": "Lead Form", "headers": ["Leads"],
    })
    assert tactic.status_code == 201

    bad_benchmark = await client.post("/api/schema/benchmarks", json={
        "product_id": product["id"], "metric_name": "Bad Metric",
    })
    assert bad_benchmark.status_code == 400

    missing = await client.post("/api/schema/subproducts", json={"product_id": 9999, "name": "Orphan"})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_export_json_and_csv(client):
    await _create_meta(client)
    doc = (await client.get("/api/schema/export")).json()
    assert doc["version"] == "2.0"
    assert doc["products"][0]["name"] == "Meta"

    resp = await client.get("/api/schema/export", params={"format": "csv"})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "schema_crosswalk_" in resp.headers["content-disposition"]
    text = resp.content.decode("utf-8-sig")
    lines = text.splitlines()
    assert lines[0].startswith("Product,Subproduct,Tactic Type")
    assert lines[1].startswith("Meta,Link Click,Facebook Link Click,fb_link_click")

    assert (await client.get("/api/schema/export", params={"format": "xml"})).status_code == 400


@pytest.mark.asyncio
async def test_import_and_versions(client):
    await _create_meta(client)
    doc = (await client.get("/api/schema/export")).json()

    version = await client.post("/api/schema/versions", json={"description": "baseline"})
    assert version.status_code == 201
    version_id = version.json()["id"]
    assert version.json()["is_active"] is True

    imported = await client.post("/api/schema/import", json={"document": doc, "clear_existing": True})
    assert imported.json()["imported"] == {"products": 1, "subproducts": 2, "tactic_types": 1}

    await client.delete(f"/api/schema/products/{(await client.get('/api/schema/products')).json()[0]['id']}")
    restored = await client.post(f"/api/schema/versions/{version_id}/restore")
    assert restored.json()["restored"]["products"] == 1
    assert [p["name"] for p in (await client.get("/api/schema/products")).json()] == ["Meta"]

    versions = (await client.get("/api/schema/versions", params={"limit": 5})).json()
    assert [v["id"] for v in versions] == [version_id]
    assert (await client.get("/api/schema/versions", params={"limit": 0})).status_code == 400


# ── sections / overrides / effective config ──

@pytest.mark.asyncio
async def test_sections_crud(client):
    sections = (await client.get("/api/sections")).json()
    assert sections[0]["section_key"] == "executive_summary"

    created = await client.post("/api/sections", json={"section_key": "appendix", "section_name": "Appendix"})
    assert created.status_code == 201
    section_id = created.json()["id"]

    bad = await client.post("/api/sections", json={"section_key": "Bad Key", "section_name": "x"})
    assert bad.status_code == 400

    updated = await client.put(f"/api/sections/{section_id}", json={"is_enabled": False})
    assert updated.json()["is_enabled"] is False

    assert (await client.delete(f"/api/sections/{section_id}")).json()["deleted"] is True
    assert (await client.delete(f"/api/sections/{section_id}")).status_code == 404


@pytest.mark.asyncio
async def test_effective_config_with_override(client):
    product = await _create_meta(client)
    link_click_id = product["subproducts"][0]["id"]
    sections = (await client.get("/api/sections")).json()
    rec_id = next(s["id"] for s in sections if s["section_key"] == "recommendations")

    resp = await client.put(
        f"/api/schema/subproducts/{link_click_id}/sections/{rec_id}",
        json={"custom_instructions": "Three bullets max"},
    )
    assert resp.status_code == 200
    assert resp.json()["custom_instructions"] == "Three bullets max"

    inverted = await client.put(
        f"/api/schema/subproducts/{link_click_id}/sections/{rec_id}",
        json={"custom_min_length": 300, "custom_max_length": 100},
    )
    assert inverted.status_code == 400

    config = (await client.get("/api/ai/effective-config", params={"subproduct_id": link_click_id})).json()
    rec = next(s for s in config["sections"] if s["section_key"] == "recommendations")
    assert rec["instructions"] == "Three bullets max"
    assert config["subproductConfig"]["ai_guidelines"] == "Focus on social engagement.\n\nReport CTR first."

    assert (await client.get("/api/ai/effective-config", params={"product_id": 9999})).status_code == 404


# ── AI settings / test configs ──

@pytest.mark.asyncio
async def test_ai_settings_roundtrip(client):
    settings = (await client.get("/api/ai/settings")).json()
    assert settings["defaults"]["default_temperature"]["value"] == 0.7

    saved = await client.put("/api/ai/settings/max_sections", json={
        "setting_value": 6, "setting_type": "number", "category": "limits",
    })
    assert saved.json()["value"] == 6

    settings = (await client.get("/api/ai/settings")).json()
    assert settings["limits"]["max_sections"]["value"] == 6


@pytest.mark.asyncio
async def test_test_config_lifecycle(client):
    product = await _create_meta(client)
    created = await client.post("/api/ai/test-configs", json={
        "config_name": "Smoke", "product_id": product["id"], "test_data": {"clicks": 3},
    })
    assert created.status_code == 201
    config_id = created.json()["id"]

    run = await client.post(f"/api/ai/test-configs/{config_id}/run", json={"dry_run": True})
    assert run.status_code == 200
    assert "Product Context:\nName: Meta" in run.json()["prompt"]

    live = await client.post(f"/api/ai/test-configs/{config_id}/run")
    assert live.status_code == 200
    assert "ANTHROPIC_API_KEY" in live.json()["error"]

    fetched = (await client.get(f"/api/ai/test-configs/{config_id}")).json()
    assert fetched["last_test_result"]["dryRun"] is False

    assert (await client.delete(f"/api/ai/test-configs/{config_id}")).status_code == 200
    assert (await client.get(f"/api/ai/test-configs/{config_id}")).status_code == 404
