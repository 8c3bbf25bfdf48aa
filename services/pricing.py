from dataclasses import dataclass
from typing import Iterable, Optional

from models.app_data import Material, PricingType, QuoteItem


INTEREST_RATE = 0.15  # 15% de taxa de juros


@dataclass(frozen=True)
class QuoteTotals:
	cost_subtotal: float
	subtotal: float
	interest: float
	total: float


def line_total(item: QuoteItem) -> float:
	# Largura/altura ausentes contam como 1
	if item.pricing_type == PricingType.PER_AREA:
		return item.unit_price * (item.width or 1) * (item.height or 1) * item.quantity
	return item.unit_price * item.quantity


def cost_subtotal(items: Iterable[QuoteItem]) -> float:
	return sum((line_total(it) for it in items), 0.0)


def compute_totals(items: Iterable[QuoteItem], profit_multiplier: float) -> QuoteTotals:
	cost = cost_subtotal(items)
	subtotal = cost * profit_multiplier
	interest = subtotal * INTEREST_RATE
	return QuoteTotals(
		cost_subtotal=cost,
		subtotal=subtotal,
		interest=interest,
		total=subtotal + interest,
	)


def format_brl(value: float) -> str:
	# Formatação estilo pt-BR: R$ 1.234,56
	formatted = f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
	return f"R$ {formatted}"


def _format_meters(value: Optional[float]) -> str:
	return f"{(value or 0):g}"


def item_description(item: QuoteItem, material: Optional[Material]) -> str:
	if material is None:
		return ""
	if material.pricing_type == PricingType.PER_AREA:
		return f"{material.name} {_format_meters(item.width)}m x {_format_meters(item.height)}m"
	return material.name
