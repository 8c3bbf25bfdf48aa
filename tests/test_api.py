# tests/test_api.py
import json
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app import create_app
from config import Settings
from services.storage import MemoryStorage
from services.store import DomainStore


@pytest.fixture
def client(tmp_path):
	settings = Settings(data_dir=tmp_path, storage="memory", logo_max_bytes=200_000)
	app = create_app(DomainStore(MemoryStorage()), settings=settings)
	return TestClient(app)


def _png_bytes(size=(40, 20)):
	buf = BytesIO()
	Image.new("RGB", size, (200, 30, 30)).save(buf, format="PNG")
	return buf.getvalue()


def _create_material(client, name="ACM", price=100, pricing_type="per_m2"):
	resp = client.post("/api/materials", json={"name": name, "price": price, "pricingType": pricing_type})
	assert resp.status_code == 201
	return resp.json()


def _create_quote(client, material_id, **extra):
	payload = {
		"companyName": "Padaria",
		"contactPerson": "Ana",
		"phone": "11 9999-0000",
		"profitMultiplier": 3,
		"items": [{"materialId": material_id, "quantity": 1, "width": 2, "height": 1}],
	}
	payload.update(extra)
	return client.post("/api/quotes", json=payload)


def test_root_page(client):
	resp = client.get("/")
	assert resp.status_code == 200
	assert "ACM e Letras" in resp.text


def test_material_validation(client):
	resp = client.post("/api/materials", json={"name": "ACM", "price": 0, "pricingType": "per_m2"})
	assert resp.status_code == 422
	resp = client.post("/api/materials", json={"name": "", "price": 10})
	assert resp.status_code == 422


def test_create_quote_scenario_and_companion_deal(client):
	material = _create_material(client)
	resp = _create_quote(client, material["id"])
	assert resp.status_code == 201
	quote = resp.json()
	assert quote["quoteNumber"] == "ORC-0001"
	assert quote["subtotal"] == pytest.approx(600)
	assert quote["tax"] == pytest.approx(90)
	assert quote["total"] == pytest.approx(690)
	assert quote["items"][0]["unitPrice"] == 100

	board = client.get("/api/board").json()
	first = board["columns"][0]
	assert first["status"]["name"] == "Orçamento"
	assert first["locked"] is True
	assert first["deals"][0]["title"] == "Orçamento #ORC-0001"

	detail = client.get(f"/api/quotes/{quote['id']}").json()
	assert detail["costSubtotal"] == pytest.approx(200)
	assert detail["items"][0]["dimensions"] == "2m x 1m"

	rows = client.get("/api/quotes").json()
	assert rows[0]["createdAt"].count("/") == 2


def test_create_quote_with_unknown_material(client):
	resp = _create_quote(client, "nao-existe")
	assert resp.status_code == 400


def test_create_quote_requires_items(client):
	resp = _create_quote(client, "x", items=[])
	assert resp.status_code == 422


def test_orcamento_column_is_locked(client):
	statuses = client.get("/api/statuses").json()
	orcamento = statuses[0]["id"]
	assert client.patch(f"/api/statuses/{orcamento}", json={"name": "Outro"}).status_code == 409
	assert client.patch(f"/api/statuses/{orcamento}", json={"color": "#000000"}).status_code == 409
	assert client.delete(f"/api/statuses/{orcamento}").status_code == 409


def test_status_lifecycle(client):
	resp = client.post("/api/statuses", json={"name": "  Fechado  "})
	assert resp.status_code == 201
	fechado = resp.json()
	assert fechado["name"] == "Fechado"
	assert client.post("/api/statuses", json={"name": "Fechado"}).status_code == 409
	assert client.post("/api/statuses", json={"name": "   "}).status_code == 422
	assert client.patch(f"/api/statuses/{fechado['id']}", json={"color": "azul"}).status_code == 422
	assert client.patch(f"/api/statuses/{fechado['id']}", json={"name": "Orçamento"}).status_code == 409

	deal = client.post("/api/deals", json={"title": "Placa", "clientName": "Loja", "value": 300}).json()
	moved = client.patch(f"/api/deals/{deal['id']}/status", json={"statusId": fechado["id"]})
	assert moved.json()["status"] == fechado["id"]
	assert client.delete(f"/api/statuses/{fechado['id']}").status_code == 409

	assert client.delete(f"/api/deals/{deal['id']}").status_code == 204
	assert client.delete(f"/api/statuses/{fechado['id']}").status_code == 204
	assert client.delete(f"/api/statuses/{fechado['id']}").status_code == 404


def test_deal_validation_and_missing_deal(client):
	assert client.post("/api/deals", json={"title": "Placa", "clientName": "Loja", "value": 0}).status_code == 422
	assert client.patch("/api/deals/nao-existe/status", json={"statusId": "s1"}).status_code == 404


def test_draft_edit_save_and_cancel(client):
	material = _create_material(client)
	quote = _create_quote(client, material["id"]).json()
	base = f"/api/quotes/{quote['id']}/draft"

	view = client.get(base).json()
	assert view["mode"] == "viewing"
	assert client.put(f"{base}/multiplier", json={"value": 2}).status_code == 409

	assert client.post(f"{base}/edit").json()["mode"] == "editing"
	edited = client.put(f"{base}/multiplier", json={"value": 2}).json()
	assert edited["draft"]["total"] == pytest.approx(460)
	assert client.get(f"/api/quotes/{quote['id']}").json()["quote"]["total"] == pytest.approx(690)

	cancelled = client.post(f"{base}/cancel").json()
	assert cancelled["draft"]["total"] == pytest.approx(690)

	client.post(f"{base}/edit")
	item_id = quote["items"][0]["itemId"]
	resp = client.patch(f"{base}/items/{item_id}", json={"field": "quantity", "value": 2})
	assert resp.json()["draft"]["total"] == pytest.approx(1380)
	client.patch(f"{base}/client", json={"companyName": "Mercado"})
	saved = client.post(f"{base}/save").json()
	assert saved["mode"] == "viewing"

	committed = client.get(f"/api/quotes/{quote['id']}").json()["quote"]
	assert committed["total"] == pytest.approx(1380)
	assert committed["companyName"] == "Mercado"


def test_draft_items(client):
	acm = _create_material(client)
	led = _create_material(client, name="Led", price=10, pricing_type="per_unit")
	quote = _create_quote(client, acm["id"]).json()
	base = f"/api/quotes/{quote['id']}/draft"
	client.post(f"{base}/edit")

	added = client.post(f"{base}/items", json={"materialId": led["id"]})
	assert added.status_code == 201
	items = added.json()["draft"]["items"]
	assert len(items) == 2
	assert "width" not in items[1]
	assert client.post(f"{base}/items", json={"materialId": "nao-existe"}).status_code == 400
	assert client.patch(f"{base}/items/nao-existe", json={"field": "width", "value": 1}).status_code == 404
	assert client.patch(f"{base}/items/{items[1]['itemId']}", json={"field": "price", "value": 1}).status_code == 422

	removed = client.delete(f"{base}/items/{items[1]['itemId']}").json()
	assert len(removed["draft"]["items"]) == 1


def test_draft_for_unknown_quote(client):
	assert client.get("/api/quotes/nao-existe/draft").status_code == 404
	assert client.get("/api/quotes/nao-existe").status_code == 404


def test_export_and_import(client):
	_create_material(client)
	resp = client.get("/api/data/export")
	assert resp.status_code == 200
	assert 'filename="acm_e_letras_backup_' in resp.headers["content-disposition"]
	snapshot = resp.json()
	assert snapshot["materials"][0]["name"] == "ACM"

	legacy = {"dealStatuses": ["Prospecção", "Fechado"], "deals": [
		{"id": "d1", "title": "Placa", "clientName": "Loja", "value": 300, "status": "Fechado"},
	]}
	files = {"file": ("backup.json", json.dumps(legacy).encode("utf-8"), "application/json")}
	imported = client.post("/api/data/import", files=files)
	assert imported.status_code == 200
	data = imported.json()
	assert [s["name"] for s in data["dealStatuses"]] == ["Orçamento", "Prospecção", "Fechado"]
	assert data["deals"][0]["status"] == data["dealStatuses"][2]["id"]
	assert data["materials"] == []


def test_import_invalid_file_keeps_data(client):
	_create_material(client)
	files = {"file": ("backup.json", b"{quebrado", "application/json")}
	resp = client.post("/api/data/import", files=files)
	assert resp.status_code == 400
	assert "corrompido" in resp.json()["detail"]
	assert len(client.get("/api/materials").json()) == 1


def test_reset(client):
	_create_material(client)
	data = client.post("/api/data/reset").json()
	assert data["materials"] == []


def test_logo_upload(client):
	files = {"file": ("logo.png", _png_bytes(), "image/png")}
	resp = client.post("/api/logo", files=files)
	assert resp.status_code == 200
	body = resp.json()
	assert body["companyLogo"].startswith("data:image/png;base64,")
	assert body["metadata"]["width"] == 40
	assert client.get("/api/data").json()["companyLogo"] == body["companyLogo"]

	assert client.delete("/api/logo").status_code == 204
	assert "companyLogo" not in client.get("/api/data").json()


def test_logo_rejections(client):
	too_big = {"file": ("logo.png", b"0" * 200_001, "image/png")}
	assert client.post("/api/logo", files=too_big).status_code == 413
	wrong_type = {"file": ("logo.txt", b"hello", "text/plain")}
	assert client.post("/api/logo", files=wrong_type).status_code == 400
	broken = {"file": ("logo.png", b"not an image", "image/png")}
	assert client.post("/api/logo", files=broken).status_code == 400


def test_quote_pdf(client):
	material = _create_material(client)
	quote = _create_quote(client, material["id"]).json()
	client.post("/api/logo", files={"file": ("logo.png", _png_bytes(), "image/png")})

	resp = client.get(f"/api/quotes/{quote['id']}/pdf")
	assert resp.status_code == 200
	assert resp.headers["content-type"] == "application/pdf"
	assert 'filename="orcamento-ORC-0001.pdf"' in resp.headers["content-disposition"]
	assert resp.content.startswith(b"%PDF")


def test_non_finite_draft_values_are_rejected(client):
	material = _create_material(client)
	quote = _create_quote(client, material["id"]).json()
	base = f"/api/quotes/{quote['id']}/draft"
	client.post(f"{base}/edit")
	item_id = quote["items"][0]["itemId"]
	headers = {"content-type": "application/json"}

	resp = client.patch(f"{base}/items/{item_id}", content='{"field": "quantity", "value": Infinity}', headers=headers)
	assert resp.status_code == 422
	resp = client.put(f"{base}/multiplier", content='{"value": Infinity}', headers=headers)
	assert resp.status_code == 422
	resp = client.put(f"{base}/multiplier", content='{"value": NaN}', headers=headers)
	assert resp.status_code == 422
	assert client.get(base).json()["draft"]["total"] == pytest.approx(690)


def test_viewing_draft_reflects_saved_quote(client):
	material = _create_material(client)
	quote = _create_quote(client, material["id"]).json()
	base = f"/api/quotes/{quote['id']}/draft"
	assert client.get(base).json()["draft"]["companyName"] == "Padaria"

	store = client.app.state.store
	store.update_quote(quote["id"], store.get_quote(quote["id"]).model_copy(update={"company_name": "Mercado"}))
	assert client.get(base).json()["draft"]["companyName"] == "Mercado"


def test_shutdown_releases_storage_subscription(tmp_path):
	storage = MemoryStorage()
	settings = Settings(data_dir=tmp_path, storage="memory")
	app = create_app(DomainStore(storage), settings=settings)
	with TestClient(app) as client:
		assert client.get("/api/materials").json() == []
	storage.external_write("app-data", json.dumps({"materials": [
		{"id": "m9", "name": "Lona", "price": 40, "pricingType": "per_m2"},
	]}))
	assert app.state.store.data.materials == []


def test_module_level_app_is_built_on_demand(tmp_path, monkeypatch):
	import app as app_module

	monkeypatch.setenv("ACM_STORAGE", "memory")
	monkeypatch.setenv("ACM_DATA_DIR", str(tmp_path))
	try:
		assert "app" not in vars(app_module)
		assert app_module.app is app_module.app
		assert TestClient(app_module.app).get("/api/statuses").status_code == 200
	finally:
		vars(app_module).pop("app", None)
