import logging
import os
from dataclasses import dataclass
from pathlib import Path


_FALSE = ("0", "", "false", "False", "FALSE")


@dataclass(frozen=True)
class Settings:
	data_dir: Path
	storage: str = "file"
	log_level: str = "INFO"
	quote_prefix: str = "ORC"
	logo_max_bytes: int = 1024 * 1024
	debug: bool = False


def load_settings() -> Settings:
	# Tudo vem do ambiente; valores padrão servem para rodar localmente
	data_dir = os.environ.get("ACM_DATA_DIR") or os.path.join(os.path.expanduser("~"), ".acm_e_letras")
	return Settings(
		data_dir=Path(data_dir),
		storage=os.environ.get("ACM_STORAGE", "file").strip().lower(),
		log_level=os.environ.get("ACM_LOG_LEVEL", "INFO").upper(),
		quote_prefix=os.environ.get("ACM_QUOTE_PREFIX", "ORC"),
		logo_max_bytes=int(os.environ.get("ACM_LOGO_MAX_BYTES", str(1024 * 1024))),
		debug=os.environ.get("ACM_DEBUG", "0") not in _FALSE,
	)


def configure_logging(level: str = "INFO") -> None:
	logging.basicConfig(
		level=getattr(logging, level, logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
