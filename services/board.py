from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from models.app_data import AppData, Deal, DealStatus, Material, ORCAMENTO_STATUS, PricingType, Quote
from services.pricing import cost_subtotal, line_total


UNKNOWN = "N/A"
UNKNOWN_MATERIAL = "Material desconhecido"


@dataclass
class BoardColumn:
	status: DealStatus
	locked: bool
	deals: List[Deal] = field(default_factory=list)

	@property
	def total_value(self) -> float:
		return sum(d.value for d in self.deals)


def is_locked(status: DealStatus) -> bool:
	# "Orçamento" não pode ser renomeado, recolorido nem excluído
	return status.name == ORCAMENTO_STATUS


def build_board(data: AppData) -> List[BoardColumn]:
	columns = [BoardColumn(status=s, locked=is_locked(s)) for s in data.deal_statuses]
	by_id: Dict[str, BoardColumn] = {c.status.id: c for c in columns}
	for deal in data.deals:
		column = by_id.get(deal.status)
		if column is not None:
			column.deals.append(deal)
	return columns


def orphan_deals(data: AppData) -> List[Deal]:
	known = {s.id for s in data.deal_statuses}
	return [d for d in data.deals if d.status not in known]


def find_material(materials: List[Material], material_id: str) -> Optional[Material]:
	return next((m for m in materials if m.id == material_id), None)


def material_name(materials: List[Material], material_id: str) -> str:
	material = find_material(materials, material_id)
	return material.name if material else UNKNOWN_MATERIAL


def format_date(iso: str) -> str:
	try:
		return datetime.fromisoformat(iso.replace("Z", "+00:00")).strftime("%d/%m/%Y")
	except (ValueError, AttributeError):
		return UNKNOWN


def quote_rows(data: AppData) -> List[dict]:
	rows = []
	for q in data.quotes:
		rows.append({
			"id": q.id,
			"quoteNumber": q.quote_number,
			"companyName": q.company_name,
			"contactPerson": q.contact_person,
			"createdAt": format_date(q.created_at),
			"profitMultiplier": f"x{q.profit_multiplier:g}" if q.profit_multiplier else UNKNOWN,
			"total": q.total,
		})
	return rows


def quote_detail(quote: Quote, materials: List[Material]) -> dict:
	items = []
	for item in quote.items:
		items.append({
			"itemId": item.item_id,
			"material": material_name(materials, item.material_id),
			"dimensions": f"{item.width or 0:g}m x {item.height or 0:g}m" if item.pricing_type == PricingType.PER_AREA else UNKNOWN,
			"quantity": item.quantity,
			"unitPrice": item.unit_price,
			"lineTotal": line_total(item),
		})
	return {
		"quote": quote.model_dump(by_alias=True, exclude_none=True, mode="json"),
		"costSubtotal": cost_subtotal(quote.items),
		"items": items,
	}
