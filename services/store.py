import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Tuple

from models.app_data import (
	AppData,
	Deal,
	DealStatus,
	Material,
	ORCAMENTO_STATUS,
	PricingType,
	Quote,
	QuoteItem,
	initial_data,
)
from services.errors import SnapshotParseError
from services.migration import RawSnapshot, load_stored_snapshot, new_id, parse_snapshot, random_color
from services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "app-data"
BACKUP_PREFIX = "acm_e_letras_backup_"

_QUOTE_SUFFIX = re.compile(r"(\d+)$")

# Campos de um orçamento que update_quote substitui
QUOTE_MUTABLE_FIELDS = (
	"company_name",
	"contact_person",
	"phone",
	"items",
	"subtotal",
	"tax",
	"total",
	"profit_multiplier",
)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _copy(model):
	return model.model_copy(deep=True) if model is not None else None


def next_quote_number(quotes: List[Quote], prefix: str = "ORC") -> str:
	latest = 0
	for q in quotes:
		m = _QUOTE_SUFFIX.search(q.quote_number or "")
		if m:
			latest = max(latest, int(m.group(1)))
	return f"{prefix}-{latest + 1:04d}"


class DomainStore:
	"""
	Fonte única dos dados (negócios, status, materiais, orçamentos, logo).

	Cada mutador é uma transformação AppData -> AppData aplicada sobre uma
	cópia; a cópia só substitui o estado atual quando termina, e então é
	gravada no armazenamento. Rejeições de integridade não alteram nada.
	"""

	def __init__(
		self,
		storage: KeyValueStorage,
		quote_prefix: str = "ORC",
		clock: Callable[[], datetime] = _utcnow,
	) -> None:
		self._storage = storage
		self._quote_prefix = quote_prefix
		self._clock = clock
		self._data = self._load()
		self._unsubscribe = storage.subscribe(self._on_storage_change)

	# ------------------------------------------------------------------ leitura

	@property
	def data(self) -> AppData:
		return self._data.model_copy(deep=True)

	def get_status(self, status_id: str) -> Optional[DealStatus]:
		return _copy(next((s for s in self._data.deal_statuses if s.id == status_id), None))

	def get_status_by_name(self, name: str) -> Optional[DealStatus]:
		return _copy(next((s for s in self._data.deal_statuses if s.name == name), None))

	def get_deal(self, deal_id: str) -> Optional[Deal]:
		return _copy(next((d for d in self._data.deals if d.id == deal_id), None))

	def get_material(self, material_id: str) -> Optional[Material]:
		return _copy(next((m for m in self._data.materials if m.id == material_id), None))

	def get_quote(self, quote_id: str) -> Optional[Quote]:
		return _copy(next((q for q in self._data.quotes if q.id == quote_id), None))

	def deals_by_status(self, status_id: str) -> List[Deal]:
		return [d.model_copy() for d in self._data.deals if d.status == status_id]

	# ------------------------------------------------------------ persistência

	def _load(self) -> AppData:
		raw = self._storage.get(STORAGE_KEY)
		if raw is None:
			return initial_data()
		try:
			return load_stored_snapshot(raw)
		except SnapshotParseError as exc:
			logger.warning("Erro lendo %r do armazenamento, usando dados iniciais: %s", STORAGE_KEY, exc)
			return initial_data()

	def _persist(self) -> None:
		self._storage.set(STORAGE_KEY, json.dumps(self._data.to_snapshot(), ensure_ascii=False))

	def _on_storage_change(self, key: str, value: Optional[str]) -> None:
		# Outro processo gravou: substitui tudo (última escrita vence)
		if key != STORAGE_KEY:
			return
		if value is None:
			self._data = initial_data()
			logger.info("Dados removidos externamente; voltando aos dados iniciais")
			return
		try:
			self._data = load_stored_snapshot(value)
		except SnapshotParseError as exc:
			logger.warning("Alteração externa ignorada: %s", exc)
			return
		logger.info("Dados recarregados após alteração externa")

	def _update(self, updater: Callable[[AppData], AppData]) -> bool:
		updated = updater(self._data.model_copy(deep=True))
		if updated == self._data:
			return False
		self._data = updated
		self._persist()
		return True

	def sync(self) -> None:
		# Armazenamentos com poll() avisam sobre gravações de outros processos
		poll = getattr(self._storage, "poll", None)
		if poll is not None:
			poll()

	def close(self) -> None:
		self._unsubscribe()

	# ------------------------------------------------------------------ negócios

	def add_deal(self, title: str, client_name: str, value: float) -> Optional[Deal]:
		created: List[Deal] = []

		def updater(data: AppData) -> AppData:
			if not data.deal_statuses:
				logger.warning("Nenhum status configurado; negócio %r não foi criado", title)
				return data
			deal = Deal(id=new_id(), title=title, client_name=client_name, value=value, status=data.deal_statuses[0].id)
			created.append(deal)
			data.deals.append(deal)
			return data

		self._update(updater)
		return _copy(created[0]) if created else None

	def update_deal_status(self, deal_id: str, status_id: str) -> bool:
		# status_id não é validado contra os status existentes
		def updater(data: AppData) -> AppData:
			for deal in data.deals:
				if deal.id == deal_id:
					deal.status = status_id
			return data

		return self._update(updater)

	def delete_deal(self, deal_id: str) -> bool:
		def updater(data: AppData) -> AppData:
			data.deals = [d for d in data.deals if d.id != deal_id]
			return data

		return self._update(updater)

	# -------------------------------------------------------------------- status

	def add_deal_status(self, name: str) -> Optional[DealStatus]:
		created: List[DealStatus] = []

		def updater(data: AppData) -> AppData:
			if any(s.name == name for s in data.deal_statuses):
				logger.warning("Status %r já existe", name)
				return data
			status = DealStatus(id=new_id(), name=name, color=random_color())
			created.append(status)
			data.deal_statuses.append(status)
			return data

		self._update(updater)
		return _copy(created[0]) if created else None

	def update_status_details(self, status_id: str, changes: Mapping[str, Any]) -> bool:
		changes = {k: v for k, v in changes.items() if k in ("name", "color") and v is not None}
		rejected: List[str] = []

		def updater(data: AppData) -> AppData:
			new_name = changes.get("name")
			if new_name and any(s.name == new_name and s.id != status_id for s in data.deal_statuses):
				logger.error("Nome de status %r já existe", new_name)
				rejected.append(new_name)
				return data
			data.deal_statuses = [
				s.model_copy(update=changes) if s.id == status_id else s for s in data.deal_statuses
			]
			return data

		self._update(updater)
		return not rejected

	def delete_deal_status(self, status_id: str) -> bool:
		rejected: List[str] = []

		def updater(data: AppData) -> AppData:
			in_use = [d for d in data.deals if d.status == status_id]
			if in_use:
				logger.error("Status %r tem %d negócio(s); não pode ser excluído", status_id, len(in_use))
				rejected.append(status_id)
				return data
			data.deal_statuses = [s for s in data.deal_statuses if s.id != status_id]
			return data

		self._update(updater)
		return not rejected

	# ---------------------------------------------------------------- materiais

	def add_material(self, name: str, price: float, pricing_type: PricingType) -> Material:
		material = Material(id=new_id(), name=name, price=price, pricing_type=pricing_type)

		def updater(data: AppData) -> AppData:
			data.materials.append(material)
			return data

		self._update(updater)
		return material.model_copy()

	def update_material(self, material_id: str, changes: Mapping[str, Any]) -> bool:
		changes = {k: v for k, v in changes.items() if k in ("name", "price", "pricing_type") and v is not None}

		def updater(data: AppData) -> AppData:
			data.materials = [
				m.model_copy(update=changes) if m.id == material_id else m for m in data.materials
			]
			return data

		return self._update(updater)

	def delete_material(self, material_id: str) -> bool:
		# Orçamentos que usam o material ficam com referência órfã
		def updater(data: AppData) -> AppData:
			data.materials = [m for m in data.materials if m.id != material_id]
			return data

		return self._update(updater)

	# --------------------------------------------------------------- orçamentos

	def add_quote(
		self,
		company_name: str,
		contact_person: str,
		phone: str,
		items: List[QuoteItem],
		profit_multiplier: float,
		subtotal: float,
		tax: float,
		total: float,
	) -> Quote:
		created: List[Quote] = []

		def updater(data: AppData) -> AppData:
			number = next_quote_number(data.quotes, self._quote_prefix)
			quote = Quote(
				id=new_id(),
				quote_number=number,
				company_name=company_name,
				contact_person=contact_person,
				phone=phone,
				items=[it.model_copy(deep=True) for it in items],
				subtotal=subtotal,
				tax=tax,
				total=total,
				profit_multiplier=profit_multiplier,
				created_at=self._clock().isoformat(),
			)
			created.append(quote)
			data.quotes.append(quote)

			orcamento_status = next((s for s in data.deal_statuses if s.name == ORCAMENTO_STATUS), None)
			if orcamento_status is None:
				logger.error("Status %r não encontrado; orçamento %s criado sem negócio", ORCAMENTO_STATUS, number)
				return data
			data.deals.append(Deal(
				id=new_id(),
				title=f"Orçamento #{number}",
				client_name=company_name,
				value=total,
				status=orcamento_status.id,
			))
			return data

		self._update(updater)
		return created[0].model_copy(deep=True)

	def update_quote(self, quote_id: str, record: Quote) -> Optional[Quote]:
		changes = {name: getattr(record, name) for name in QUOTE_MUTABLE_FIELDS}
		changes["items"] = [it.model_copy(deep=True) for it in record.items]

		def updater(data: AppData) -> AppData:
			data.quotes = [q.model_copy(update=changes) if q.id == quote_id else q for q in data.quotes]
			return data

		self._update(updater)
		return self.get_quote(quote_id)

	def delete_quote(self, quote_id: str) -> bool:
		# O negócio gerado junto com o orçamento continua no funil
		def updater(data: AppData) -> AppData:
			data.quotes = [q for q in data.quotes if q.id != quote_id]
			return data

		return self._update(updater)

	# ------------------------------------------------------ gestão de dados

	def export_data(self) -> Tuple[str, str]:
		filename = f"{BACKUP_PREFIX}{self._clock().date().isoformat()}.json"
		return filename, json.dumps(self._data.to_snapshot(), ensure_ascii=False, indent=2)

	def import_data(self, raw: RawSnapshot) -> AppData:
		# Erros de formato sobem como SnapshotParseError sem tocar nos dados
		migrated = parse_snapshot(raw)
		self._update(lambda _data: migrated)
		logger.info(
			"Dados importados: %d negócio(s), %d material(is), %d orçamento(s)",
			len(migrated.deals), len(migrated.materials), len(migrated.quotes),
		)
		return self.data

	def reset_data(self) -> None:
		self._update(lambda _data: initial_data())
		logger.info("Dados restaurados para o padrão")

	def set_company_logo(self, data_uri: Optional[str]) -> None:
		def updater(data: AppData) -> AppData:
			data.company_logo = data_uri or None
			return data

		self._update(updater)
