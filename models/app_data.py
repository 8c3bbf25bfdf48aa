from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ORCAMENTO_STATUS = "Orçamento"
ORCAMENTO_COLOR = "#8E8E8E"


class CamelModel(BaseModel):
	# Chaves em camelCase no JSON persistido (mesmo formato dos backups)
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PricingType(str, Enum):
	PER_AREA = "per_m2"
	PER_UNIT = "per_unit"


class DealStatus(CamelModel):
	id: str = ""
	name: str
	color: str = ORCAMENTO_COLOR


class Deal(CamelModel):
	id: str
	title: str
	client_name: str
	value: float
	status: str = Field(description="ID do DealStatus")


class Material(CamelModel):
	id: str
	name: str
	price: float
	pricing_type: PricingType


class QuoteItem(CamelModel):
	item_id: str
	material_id: str
	quantity: int = 1
	unit_price: float
	width: Optional[float] = None
	height: Optional[float] = None
	pricing_type: PricingType


class Quote(CamelModel):
	id: str
	quote_number: str
	company_name: str
	contact_person: str
	phone: str = ""
	items: List[QuoteItem] = Field(default_factory=list)
	subtotal: float = 0.0
	tax: float = 0.0
	total: float = 0.0
	profit_multiplier: float = 1.0
	created_at: str


def default_statuses() -> List[DealStatus]:
	return [DealStatus(id="s1", name=ORCAMENTO_STATUS, color=ORCAMENTO_COLOR)]


class AppData(CamelModel):
	deals: List[Deal] = Field(default_factory=list)
	materials: List[Material] = Field(default_factory=list)
	quotes: List[Quote] = Field(default_factory=list)
	deal_statuses: List[DealStatus] = Field(default_factory=default_statuses)
	company_logo: Optional[str] = None

	def to_snapshot(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def initial_data() -> AppData:
	return AppData()
