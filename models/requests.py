from typing import List, Literal, Optional

from pydantic import ConfigDict, Field

from models.app_data import CamelModel, PricingType


HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


class RequestModel(CamelModel):
	model_config = ConfigDict(str_strip_whitespace=True)


class DealCreate(RequestModel):
	title: str = Field(min_length=1)
	client_name: str = Field(min_length=1)
	value: float = Field(gt=0, allow_inf_nan=False, description="Valor do negócio")


class DealMove(RequestModel):
	status_id: str = Field(min_length=1)


class StatusCreate(RequestModel):
	name: str = Field(min_length=1, description="Nome da coluna")


class StatusUpdate(RequestModel):
	name: Optional[str] = Field(default=None, min_length=1)
	color: Optional[str] = Field(default=None, pattern=HEX_COLOR)


class MaterialCreate(RequestModel):
	name: str = Field(min_length=1)
	price: float = Field(gt=0, allow_inf_nan=False, description="Preço por m² ou por unidade")
	pricing_type: PricingType = PricingType.PER_AREA


class MaterialUpdate(RequestModel):
	name: Optional[str] = Field(default=None, min_length=1)
	price: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
	pricing_type: Optional[PricingType] = None


class QuoteItemInput(RequestModel):
	material_id: str = Field(min_length=1)
	quantity: int = Field(default=1, ge=1, description="Quantidade do item")
	width: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False, description="Largura (m)")
	height: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False, description="Altura (m)")


class QuoteCreate(RequestModel):
	company_name: str = Field(min_length=1)
	contact_person: str = Field(min_length=1)
	phone: str = ""
	profit_multiplier: float = Field(default=3.0, ge=1, allow_inf_nan=False)
	items: List[QuoteItemInput] = Field(min_length=1)


class DraftItemAdd(RequestModel):
	material_id: str = Field(min_length=1)


class DraftItemUpdate(RequestModel):
	field: Literal["quantity", "width", "height"]
	value: float = Field(allow_inf_nan=False)


class DraftMultiplier(RequestModel):
	value: float = Field(allow_inf_nan=False)


class DraftClientUpdate(RequestModel):
	company_name: Optional[str] = None
	contact_person: Optional[str] = None
	phone: Optional[str] = None
