import copy
import json
import logging
import random
import uuid
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from models.app_data import AppData, ORCAMENTO_COLOR, ORCAMENTO_STATUS, initial_data
from services.errors import SnapshotParseError

logger = logging.getLogger(__name__)

# Cores padrão por posição das colunas no formato antigo
DEFAULT_STATUS_PALETTE = ["#8E8E8E", "#4A90E2", "#F5A623", "#50E3C2", "#D0021B"]

RawSnapshot = Union[str, bytes, bytearray, Dict[str, Any]]


def new_id() -> str:
	return str(uuid.uuid4())


def random_color() -> str:
	return f"#{random.randint(0, 0xFFFFFF):06x}"


def is_legacy_snapshot(raw: Dict[str, Any]) -> bool:
	statuses = raw.get("dealStatuses")
	return isinstance(statuses, list) and len(statuses) > 0 and isinstance(statuses[0], str)


def _migrate_legacy_statuses(raw: Dict[str, Any]) -> None:
	by_name: Dict[str, Dict[str, Any]] = {}
	statuses: List[Dict[str, Any]] = []
	for index, name in enumerate(raw["dealStatuses"]):
		if not isinstance(name, str):
			raise ValueError(f"status legado inválido na posição {index}: {name!r}")
		color = DEFAULT_STATUS_PALETTE[index] if index < len(DEFAULT_STATUS_PALETTE) else random_color()
		status = {"id": new_id(), "name": name, "color": color}
		by_name[name] = status
		statuses.append(status)

	# "Orçamento" sempre existe e vem primeiro
	if ORCAMENTO_STATUS not in by_name:
		statuses.insert(0, {"id": new_id(), "name": ORCAMENTO_STATUS, "color": ORCAMENTO_COLOR})
	else:
		statuses.sort(key=lambda s: s["name"] != ORCAMENTO_STATUS)

	fallback_id = statuses[0]["id"]
	for deal in raw.get("deals") or []:
		if not isinstance(deal, dict):
			continue
		found = by_name.get(deal.get("status"))
		deal["status"] = found["id"] if found else fallback_id

	raw["dealStatuses"] = statuses


def _backfill_status_ids(raw: Dict[str, Any]) -> None:
	for status in raw.get("dealStatuses") or []:
		if isinstance(status, dict) and not status.get("id"):
			status["id"] = new_id()


def migrate_snapshot(raw: Dict[str, Any]) -> AppData:
	"""
	Converte um snapshot cru (atual ou legado) para o esquema atual.
	Não altera o dicionário recebido. Dados já atuais passam sem mudança,
	exceto ids de status ausentes, que são preenchidos.
	"""
	raw = copy.deepcopy(raw)
	if is_legacy_snapshot(raw):
		logger.info("Snapshot em formato legado; migrando %d status", len(raw["dealStatuses"]))
		_migrate_legacy_statuses(raw)
	else:
		_backfill_status_ids(raw)

	# Só coleções ausentes recebem o padrão; listas vazias são mantidas
	defaults = initial_data().to_snapshot()
	assembled = {
		key: raw[key] if raw.get(key) is not None else defaults[key]
		for key in ("deals", "materials", "quotes", "dealStatuses")
	}
	if raw.get("companyLogo"):
		assembled["companyLogo"] = raw["companyLogo"]
	return AppData.model_validate(assembled)


def parse_snapshot(raw: RawSnapshot) -> AppData:
	# Aceita texto/bytes JSON ou um objeto já decodificado
	if isinstance(raw, (bytes, bytearray)):
		try:
			raw = raw.decode("utf-8-sig")
		except UnicodeDecodeError as exc:
			raise SnapshotParseError("arquivo não está em UTF-8") from exc
	if isinstance(raw, str):
		try:
			raw = json.loads(raw)
		except json.JSONDecodeError as exc:
			raise SnapshotParseError(f"JSON inválido: {exc.msg}") from exc
	if not isinstance(raw, dict):
		raise SnapshotParseError("o snapshot precisa ser um objeto JSON")
	try:
		return migrate_snapshot(raw)
	except (ValidationError, ValueError, TypeError) as exc:
		raise SnapshotParseError(f"snapshot fora do formato esperado: {exc}") from exc


def load_stored_snapshot(text: str) -> AppData:
	# Dados salvos são mesclados sobre os dados iniciais antes da migração
	try:
		parsed = json.loads(text)
	except json.JSONDecodeError as exc:
		raise SnapshotParseError(f"JSON salvo inválido: {exc.msg}") from exc
	if not isinstance(parsed, dict):
		raise SnapshotParseError("valor salvo não é um objeto JSON")
	merged = {**initial_data().to_snapshot(), **parsed}
	return parse_snapshot(merged)

