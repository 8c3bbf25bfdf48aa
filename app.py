import logging
from contextlib import asynccontextmanager
from io import BytesIO
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from config import Settings, configure_logging, load_settings
from models.requests import (
	DealCreate,
	DealMove,
	DraftClientUpdate,
	DraftItemAdd,
	DraftItemUpdate,
	DraftMultiplier,
	MaterialCreate,
	MaterialUpdate,
	QuoteCreate,
	StatusCreate,
	StatusUpdate,
)
from services.board import build_board, is_locked, orphan_deals, quote_detail, quote_rows
from services.branding import encode_logo, logo_metadata
from services.errors import (
	DraftStateError,
	LogoFormatError,
	LogoTooLargeError,
	NotFoundError,
	PdfRenderError,
	QuoteValidationError,
	SnapshotParseError,
)
from services.quote_pdf import pdf_filename, render_quote_pdf
from services.reconciler import DraftRegistry, NewQuoteDraft, QuoteDraft
from services.storage import JsonFileStorage, MemoryStorage
from services.store import DomainStore

logger = logging.getLogger(__name__)


def _dump(model: BaseModel) -> Dict[str, Any]:
	return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def get_store(request: Request) -> DomainStore:
	return request.app.state.store


def get_drafts(request: Request) -> DraftRegistry:
	return request.app.state.drafts


def build_store(settings: Settings) -> DomainStore:
	if settings.storage == "memory":
		storage = MemoryStorage()
	else:
		storage = JsonFileStorage(settings.data_dir)
	return DomainStore(storage, quote_prefix=settings.quote_prefix)


def create_app(store: Optional[DomainStore] = None, settings: Optional[Settings] = None) -> FastAPI:
	settings = settings or load_settings()
	configure_logging(settings.log_level)

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		yield
		# Solta a assinatura de mudanças do armazenamento
		app.state.store.close()

	app = FastAPI(title="ACM e Letras", version="0.1.0", debug=settings.debug, lifespan=lifespan)
	app.state.settings = settings
	app.state.store = store or build_store(settings)
	app.state.drafts = DraftRegistry(app.state.store)

	@app.middleware("http")
	async def sync_storage(request: Request, call_next):
		# Outro processo pode ter gravado o arquivo de dados
		request.app.state.store.sync()
		return await call_next(request)

	@app.exception_handler(NotFoundError)
	async def not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
		return JSONResponse(status_code=404, content={"detail": str(exc)})

	@app.exception_handler(DraftStateError)
	async def draft_state(_request: Request, _exc: DraftStateError) -> JSONResponse:
		return JSONResponse(status_code=409, content={"detail": "Entre no modo de edição antes de alterar o orçamento."})

	@app.exception_handler(QuoteValidationError)
	async def quote_invalid(_request: Request, exc: QuoteValidationError) -> JSONResponse:
		return JSONResponse(status_code=400, content={"detail": str(exc)})

	register_routes(app)
	return app


def _require_status(store: DomainStore, status_id: str):
	status = store.get_status(status_id)
	if status is None:
		raise HTTPException(status_code=404, detail="Coluna não encontrada.")
	return status


def _require_quote(store: DomainStore, quote_id: str):
	quote = store.get_quote(quote_id)
	if quote is None:
		raise HTTPException(status_code=404, detail="Orçamento não encontrado.")
	return quote


def _draft_view(draft: QuoteDraft) -> Dict[str, Any]:
	return {
		"mode": draft.mode.value,
		"costSubtotal": draft.cost_subtotal,
		"draft": _dump(draft.draft),
	}


def register_routes(app: FastAPI) -> None:

	@app.get("/", response_class=HTMLResponse)
	def read_root() -> HTMLResponse:
		# Página simples com as rotas principais
		html = """
		<!doctype html>
		<html lang="pt-br">
		<head>
			<meta charset="utf-8" />
			<title>ACM e Letras</title>
			<style>
				body { font-family: system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif; max-width: 780px; margin: 0 auto; padding: 40px 20px; }
				code { background: #f3f4f6; padding: 2px 6px; border-radius: 6px; }
			</style>
		</head>
		<body>
			<h1>ACM e Letras</h1>
			<p>Funil de vendas: <a href="/api/board"><code>/api/board</code></a></p>
			<p>Materiais: <a href="/api/materials"><code>/api/materials</code></a></p>
			<p>Orçamentos: <a href="/api/quotes"><code>/api/quotes</code></a></p>
			<p>Backup: <a href="/api/data/export"><code>/api/data/export</code></a></p>
			<p>Documentação: <a href="/docs"><code>/docs</code></a></p>
		</body>
		</html>
		"""
		return HTMLResponse(content=html)

	@app.get("/api/data")
	def read_data(store: DomainStore = Depends(get_store)) -> JSONResponse:
		return JSONResponse(content=store.data.to_snapshot())

	# ------------------------------------------------------------------ funil

	@app.get("/api/board")
	def read_board(store: DomainStore = Depends(get_store)) -> JSONResponse:
		data = store.data
		columns = [
			{
				"status": _dump(c.status),
				"locked": c.locked,
				"totalValue": c.total_value,
				"deals": [_dump(d) for d in c.deals],
			}
			for c in build_board(data)
		]
		return JSONResponse(content={"columns": columns, "orphans": [_dump(d) for d in orphan_deals(data)]})

	@app.post("/api/deals", status_code=201)
	def create_deal(payload: DealCreate, store: DomainStore = Depends(get_store)) -> JSONResponse:
		deal = store.add_deal(payload.title, payload.client_name, payload.value)
		if deal is None:
			raise HTTPException(status_code=409, detail="Crie uma coluna antes de adicionar negócios.")
		return JSONResponse(status_code=201, content=_dump(deal))

	@app.patch("/api/deals/{deal_id}/status")
	def move_deal(deal_id: str, payload: DealMove, store: DomainStore = Depends(get_store)) -> JSONResponse:
		if store.get_deal(deal_id) is None:
			raise HTTPException(status_code=404, detail="Negócio não encontrado.")
		store.update_deal_status(deal_id, payload.status_id)
		return JSONResponse(content=_dump(store.get_deal(deal_id)))

	@app.delete("/api/deals/{deal_id}", status_code=204)
	def remove_deal(deal_id: str, store: DomainStore = Depends(get_store)) -> Response:
		store.delete_deal(deal_id)
		return Response(status_code=204)

	# ---------------------------------------------------------------- colunas

	@app.get("/api/statuses")
	def list_statuses(store: DomainStore = Depends(get_store)) -> JSONResponse:
		return JSONResponse(content=[_dump(s) for s in store.data.deal_statuses])

	@app.post("/api/statuses", status_code=201)
	def create_status(payload: StatusCreate, store: DomainStore = Depends(get_store)) -> JSONResponse:
		status = store.add_deal_status(payload.name)
		if status is None:
			raise HTTPException(status_code=409, detail="Já existe uma coluna com esse nome.")
		return JSONResponse(status_code=201, content=_dump(status))

	@app.patch("/api/statuses/{status_id}")
	def edit_status(status_id: str, payload: StatusUpdate, store: DomainStore = Depends(get_store)) -> JSONResponse:
		status = _require_status(store, status_id)
		if is_locked(status):
			raise HTTPException(status_code=409, detail="A coluna Orçamento não pode ser alterada.")
		if not store.update_status_details(status_id, payload.model_dump(exclude_unset=True)):
			raise HTTPException(status_code=409, detail="Já existe uma coluna com esse nome.")
		return JSONResponse(content=_dump(store.get_status(status_id)))

	@app.delete("/api/statuses/{status_id}", status_code=204)
	def remove_status(status_id: str, store: DomainStore = Depends(get_store)) -> Response:
		status = _require_status(store, status_id)
		if is_locked(status):
			raise HTTPException(status_code=409, detail="A coluna Orçamento não pode ser excluída.")
		if not store.delete_deal_status(status_id):
			raise HTTPException(
				status_code=409,
				detail="Mova ou exclua todos os cartões desta coluna antes de excluí-la.",
			)
		return Response(status_code=204)

	# -------------------------------------------------------------- materiais

	@app.get("/api/materials")
	def list_materials(store: DomainStore = Depends(get_store)) -> JSONResponse:
		return JSONResponse(content=[_dump(m) for m in store.data.materials])

	@app.post("/api/materials", status_code=201)
	def create_material(payload: MaterialCreate, store: DomainStore = Depends(get_store)) -> JSONResponse:
		material = store.add_material(payload.name, payload.price, payload.pricing_type)
		return JSONResponse(status_code=201, content=_dump(material))

	@app.patch("/api/materials/{material_id}")
	def edit_material(material_id: str, payload: MaterialUpdate, store: DomainStore = Depends(get_store)) -> JSONResponse:
		if store.get_material(material_id) is None:
			raise HTTPException(status_code=404, detail="Material não encontrado.")
		store.update_material(material_id, payload.model_dump(exclude_unset=True))
		return JSONResponse(content=_dump(store.get_material(material_id)))

	@app.delete("/api/materials/{material_id}", status_code=204)
	def remove_material(material_id: str, store: DomainStore = Depends(get_store)) -> Response:
		store.delete_material(material_id)
		return Response(status_code=204)

	# ------------------------------------------------------------- orçamentos

	@app.get("/api/quotes")
	def list_quotes(store: DomainStore = Depends(get_store)) -> JSONResponse:
		return JSONResponse(content=quote_rows(store.data))

	@app.post("/api/quotes", status_code=201)
	def create_quote(payload: QuoteCreate, store: DomainStore = Depends(get_store)) -> JSONResponse:
		builder = NewQuoteDraft(store)
		builder.company_name = payload.company_name
		builder.contact_person = payload.contact_person
		builder.phone = payload.phone
		builder.profit_multiplier = payload.profit_multiplier
		for entry in payload.items:
			item = builder.add_item(entry.material_id)
			if item is None:
				raise HTTPException(status_code=400, detail=f"Material '{entry.material_id}' não encontrado.")
			builder.update_item(item.item_id, "quantity", entry.quantity)
			if entry.width is not None:
				builder.update_item(item.item_id, "width", entry.width)
			if entry.height is not None:
				builder.update_item(item.item_id, "height", entry.height)
		quote = builder.submit()
		return JSONResponse(status_code=201, content=_dump(quote))

	@app.get("/api/quotes/{quote_id}")
	def read_quote(quote_id: str, store: DomainStore = Depends(get_store)) -> JSONResponse:
		quote = _require_quote(store, quote_id)
		return JSONResponse(content=quote_detail(quote, store.data.materials))

	@app.delete("/api/quotes/{quote_id}", status_code=204)
	def remove_quote(
		quote_id: str,
		store: DomainStore = Depends(get_store),
		drafts: DraftRegistry = Depends(get_drafts),
	) -> Response:
		store.delete_quote(quote_id)
		drafts.discard(quote_id)
		return Response(status_code=204)

	@app.get("/api/quotes/{quote_id}/pdf")
	def quote_pdf(quote_id: str, store: DomainStore = Depends(get_store)) -> StreamingResponse:
		quote = _require_quote(store, quote_id)
		data = store.data
		try:
			pdf_bytes = render_quote_pdf(quote, data.materials, data.company_logo)
		except PdfRenderError as exc:
			raise HTTPException(status_code=500, detail=str(exc))
		headers = {"Content-Disposition": f'attachment; filename="{pdf_filename(quote)}"'}
		return StreamingResponse(BytesIO(pdf_bytes), media_type="application/pdf", headers=headers)

	# ------------------------------------------------- edição de orçamento

	@app.get("/api/quotes/{quote_id}/draft")
	def read_draft(quote_id: str, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		return JSONResponse(content=_draft_view(drafts.get(quote_id)))

	@app.post("/api/quotes/{quote_id}/draft/edit")
	def start_edit(quote_id: str, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		draft = drafts.get(quote_id)
		draft.start_editing()
		return JSONResponse(content=_draft_view(draft))

	@app.post("/api/quotes/{quote_id}/draft/save")
	def save_draft(quote_id: str, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		draft = drafts.get(quote_id)
		draft.save()
		return JSONResponse(content=_draft_view(draft))

	@app.post("/api/quotes/{quote_id}/draft/cancel")
	def cancel_draft(quote_id: str, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		draft = drafts.get(quote_id)
		draft.cancel()
		return JSONResponse(content=_draft_view(draft))

	@app.post("/api/quotes/{quote_id}/draft/items", status_code=201)
	def add_draft_item(quote_id: str, payload: DraftItemAdd, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		draft = drafts.get(quote_id)
		if draft.add_item(payload.material_id) is None:
			raise HTTPException(status_code=400, detail="Material não encontrado.")
		return JSONResponse(status_code=201, content=_draft_view(draft))

	@app.patch("/api/quotes/{quote_id}/draft/items/{item_id}")
	def edit_draft_item(
		quote_id: str,
		item_id: str,
		payload: DraftItemUpdate,
		drafts: DraftRegistry = Depends(get_drafts),
	) -> JSONResponse:
		draft = drafts.get(quote_id)
		if draft.update_item(item_id, payload.field, payload.value) is None:
			raise HTTPException(status_code=404, detail="Item não encontrado.")
		return JSONResponse(content=_draft_view(draft))

	@app.delete("/api/quotes/{quote_id}/draft/items/{item_id}")
	def remove_draft_item(quote_id: str, item_id: str, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		draft = drafts.get(quote_id)
		draft.remove_item(item_id)
		return JSONResponse(content=_draft_view(draft))

	@app.put("/api/quotes/{quote_id}/draft/multiplier")
	def set_multiplier(quote_id: str, payload: DraftMultiplier, drafts: DraftRegistry = Depends(get_drafts)) -> JSONResponse:
		draft = drafts.get(quote_id)
		draft.set_profit_multiplier(payload.value)
		return JSONResponse(content=_draft_view(draft))

	@app.patch("/api/quotes/{quote_id}/draft/client")
	def edit_draft_client(
		quote_id: str,
		payload: DraftClientUpdate,
		drafts: DraftRegistry = Depends(get_drafts),
	) -> JSONResponse:
		draft = drafts.get(quote_id)
		draft.update_client(**payload.model_dump(exclude_unset=True))
		return JSONResponse(content=_draft_view(draft))

	# ------------------------------------------------------- gestão de dados

	@app.get("/api/data/export")
	def export_data(store: DomainStore = Depends(get_store)) -> StreamingResponse:
		filename, text = store.export_data()
		headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
		return StreamingResponse(BytesIO(text.encode("utf-8")), media_type="application/json", headers=headers)

	@app.post("/api/data/import")
	async def import_data(
		file: UploadFile = File(...),
		store: DomainStore = Depends(get_store),
		drafts: DraftRegistry = Depends(get_drafts),
	) -> JSONResponse:
		raw = await file.read()
		try:
			store.import_data(raw)
		except SnapshotParseError as exc:
			logger.warning("Importação rejeitada (%s): %s", file.filename, exc)
			raise HTTPException(status_code=400, detail="O arquivo selecionado não é válido ou está corrompido.")
		drafts.clear()
		return JSONResponse(content=store.data.to_snapshot())

	@app.post("/api/data/reset")
	def reset_data(
		store: DomainStore = Depends(get_store),
		drafts: DraftRegistry = Depends(get_drafts),
	) -> JSONResponse:
		store.reset_data()
		drafts.clear()
		return JSONResponse(content=store.data.to_snapshot())

	@app.post("/api/logo")
	async def upload_logo(request: Request, file: UploadFile = File(...), store: DomainStore = Depends(get_store)) -> JSONResponse:
		content = await file.read()
		max_bytes = request.app.state.settings.logo_max_bytes
		try:
			data_uri = encode_logo(content, file.content_type, max_bytes=max_bytes)
			meta = logo_metadata(content, file.content_type)
		except LogoTooLargeError as exc:
			raise HTTPException(status_code=413, detail=str(exc))
		except LogoFormatError as exc:
			raise HTTPException(status_code=400, detail=str(exc))
		store.set_company_logo(data_uri)
		meta["filename"] = file.filename
		return JSONResponse(content={"companyLogo": data_uri, "metadata": meta})

	@app.delete("/api/logo", status_code=204)
	def remove_logo(store: DomainStore = Depends(get_store)) -> Response:
		store.set_company_logo(None)
		return Response(status_code=204)


def __getattr__(name: str):
	# `app` em nível de módulo (entrada da Vercel), criado só no primeiro acesso
	if name == "app":
		globals()["app"] = create_app()
		return globals()["app"]
	raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
	import uvicorn

	uvicorn.run("app:app", host="0.0.0.0", port=8000)
