import logging
import math
from enum import Enum
from typing import Dict, List, Optional

from models.app_data import Material, PricingType, Quote, QuoteItem
from services.errors import DraftStateError, NotFoundError, QuoteValidationError
from services.migration import new_id
from services.pricing import compute_totals, cost_subtotal
from services.store import DomainStore

logger = logging.getLogger(__name__)

DEFAULT_PROFIT_MULTIPLIER = 3.0
EDITABLE_ITEM_FIELDS = ("quantity", "width", "height")
CLIENT_FIELDS = ("company_name", "contact_person", "phone")


class DraftMode(str, Enum):
	VIEWING = "viewing"
	EDITING = "editing"


def make_item(material: Material) -> QuoteItem:
	# Preço copiado do material no momento da inclusão (não acompanha alterações)
	per_area = material.pricing_type == PricingType.PER_AREA
	return QuoteItem(
		item_id=new_id(),
		material_id=material.id,
		quantity=1,
		unit_price=material.price,
		width=1.0 if per_area else None,
		height=1.0 if per_area else None,
		pricing_type=material.pricing_type,
	)


def clamp_item_value(field: str, value: float):
	if field not in EDITABLE_ITEM_FIELDS:
		raise ValueError(f"campo de item não editável: {field!r}")
	if value is None or not math.isfinite(value):
		value = 0
	if field == "quantity":
		return max(1, int(value))
	return max(0.01, float(value))


def _set_item_field(items: List[QuoteItem], item_id: str, field: str, value: float) -> Optional[QuoteItem]:
	clamped = clamp_item_value(field, value)
	for item in items:
		if item.item_id == item_id:
			setattr(item, field, clamped)
			return item
	return None


class QuoteDraft:
	"""
	Rascunho de um orçamento existente.

	VIEWING: o rascunho é uma cópia somente leitura do original.
	EDITING: o rascunho diverge livremente até save() ou cancel().
	Toda alteração em itens ou multiplicador recalcula subtotal/tax/total.
	"""

	def __init__(self, store: DomainStore, quote_id: str) -> None:
		self._store = store
		self.quote_id = quote_id
		self.mode = DraftMode.VIEWING
		self._draft: Optional[Quote] = None
		if store.get_quote(quote_id) is None:
			raise NotFoundError("Orçamento", quote_id)

	@property
	def draft(self) -> Quote:
		# Fora da edição o rascunho acompanha o original salvo
		if self.editing:
			return self._draft
		return self._clone_original()

	@property
	def original(self) -> Quote:
		quote = self._store.get_quote(self.quote_id)
		if quote is None:
			raise NotFoundError("Orçamento", self.quote_id)
		return quote

	@property
	def editing(self) -> bool:
		return self.mode == DraftMode.EDITING

	@property
	def cost_subtotal(self) -> float:
		return cost_subtotal(self.draft.items)

	def _clone_original(self) -> Quote:
		return self.original.model_copy(deep=True)

	def _require_editing(self) -> None:
		if not self.editing:
			raise DraftStateError("o orçamento não está em edição")

	def _recompute(self) -> None:
		totals = compute_totals(self.draft.items, self.draft.profit_multiplier)
		self.draft.subtotal = totals.subtotal
		self.draft.tax = totals.interest
		self.draft.total = totals.total

	def start_editing(self) -> Quote:
		if not self.editing:
			self._draft = self._clone_original()
			self.mode = DraftMode.EDITING
		return self.draft

	def save(self) -> Quote:
		self._require_editing()
		committed = self._store.update_quote(self.quote_id, self.draft)
		if committed is None:
			raise NotFoundError("Orçamento", self.quote_id)
		logger.info("Orçamento %s salvo (total %.2f)", committed.quote_number, committed.total)
		self._draft = None
		self.mode = DraftMode.VIEWING
		return committed

	def cancel(self) -> Quote:
		self._require_editing()
		self._draft = None
		self.mode = DraftMode.VIEWING
		return self.draft

	def add_item(self, material_id: str) -> Optional[QuoteItem]:
		self._require_editing()
		material = self._store.get_material(material_id)
		if material is None:
			return None
		item = make_item(material)
		self.draft.items.append(item)
		self._recompute()
		return item

	def remove_item(self, item_id: str) -> bool:
		self._require_editing()
		before = len(self.draft.items)
		self._draft.items = [it for it in self.draft.items if it.item_id != item_id]
		self._recompute()
		return len(self.draft.items) != before

	def update_item(self, item_id: str, field: str, value: float) -> Optional[QuoteItem]:
		self._require_editing()
		item = _set_item_field(self.draft.items, item_id, field, value)
		self._recompute()
		return item

	def set_profit_multiplier(self, value: float) -> float:
		self._require_editing()
		if value is None or not math.isfinite(value):
			value = 1.0
		self.draft.profit_multiplier = max(1.0, float(value))
		self._recompute()
		return self.draft.profit_multiplier

	def update_client(self, **fields: Optional[str]) -> Quote:
		self._require_editing()
		for name, value in fields.items():
			if name in CLIENT_FIELDS and value is not None:
				setattr(self.draft, name, value)
		return self.draft


class NewQuoteDraft:
	"""Montagem de um orçamento novo antes de existir no store."""

	def __init__(self, store: DomainStore) -> None:
		self._store = store
		self.company_name = ""
		self.contact_person = ""
		self.phone = ""
		self.items: List[QuoteItem] = []
		self.profit_multiplier = DEFAULT_PROFIT_MULTIPLIER

	@property
	def totals(self):
		return compute_totals(self.items, self.profit_multiplier)

	def add_item(self, material_id: str) -> Optional[QuoteItem]:
		material = self._store.get_material(material_id)
		if material is None:
			return None
		item = make_item(material)
		self.items.append(item)
		return item

	def update_item(self, item_id: str, field: str, value: float) -> Optional[QuoteItem]:
		return _set_item_field(self.items, item_id, field, value)

	def remove_item(self, item_id: str) -> None:
		self.items = [it for it in self.items if it.item_id != item_id]

	def submit(self) -> Quote:
		if not self.company_name or not self.contact_person or not self.items:
			raise QuoteValidationError(
				"Por favor, preencha as informações do cliente e adicione pelo menos um item."
			)
		totals = self.totals
		return self._store.add_quote(
			company_name=self.company_name,
			contact_person=self.contact_person,
			phone=self.phone,
			items=self.items,
			profit_multiplier=self.profit_multiplier,
			subtotal=totals.subtotal,
			tax=totals.interest,
			total=totals.total,
		)


class DraftRegistry:
	"""Um QuoteDraft por orçamento aberto."""

	def __init__(self, store: DomainStore) -> None:
		self._store = store
		self._drafts: Dict[str, QuoteDraft] = {}

	def get(self, quote_id: str) -> QuoteDraft:
		draft = self._drafts.get(quote_id)
		if draft is None:
			draft = QuoteDraft(self._store, quote_id)
			self._drafts[quote_id] = draft
		return draft

	def discard(self, quote_id: str) -> None:
		self._drafts.pop(quote_id, None)

	def clear(self) -> None:
		self._drafts.clear()
