import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

# callback(chave, novo_valor); novo_valor None quando a chave foi removida
Listener = Callable[[str, Optional[str]], None]


class KeyValueStorage(Protocol):
	def get(self, key: str) -> Optional[str]: ...

	def set(self, key: str, value: str) -> None: ...

	def subscribe(self, listener: Listener) -> Callable[[], None]: ...


class _Listeners:
	def __init__(self) -> None:
		self._listeners: List[Listener] = []

	def subscribe(self, listener: Listener) -> Callable[[], None]:
		self._listeners.append(listener)

		def unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return unsubscribe

	def notify(self, key: str, value: Optional[str]) -> None:
		for listener in list(self._listeners):
			listener(key, value)


class MemoryStorage(_Listeners):
	"""Armazenamento em memória (testes e modo efêmero)."""

	def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
		super().__init__()
		self._values: Dict[str, str] = dict(initial or {})

	def get(self, key: str) -> Optional[str]:
		return self._values.get(key)

	def set(self, key: str, value: str) -> None:
		# Escritas próprias não disparam notificação, como o evento "storage" do navegador
		self._values[key] = value

	def external_write(self, key: str, value: Optional[str]) -> None:
		# Simula outro processo/aba escrevendo na mesma chave
		if value is None:
			self._values.pop(key, None)
		else:
			self._values[key] = value
		self.notify(key, value)


class JsonFileStorage(_Listeners):
	"""Um arquivo <chave>.json por chave dentro de data_dir."""

	def __init__(self, data_dir: Path) -> None:
		super().__init__()
		self.data_dir = Path(data_dir)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self._mtimes: Dict[str, Optional[float]] = {}

	def _path(self, key: str) -> Path:
		return self.data_dir / f"{key}.json"

	def _mtime(self, key: str) -> Optional[float]:
		try:
			return os.path.getmtime(self._path(key))
		except OSError:
			return None

	def get(self, key: str) -> Optional[str]:
		path = self._path(key)
		self._mtimes[key] = self._mtime(key)
		if not path.exists():
			return None
		try:
			return path.read_text(encoding="utf-8")
		except OSError as exc:
			logger.warning("Erro lendo a chave %r em %s: %s", key, path, exc)
			return None

	def set(self, key: str, value: str) -> None:
		path = self._path(key)
		tmp = path.with_suffix(".json.tmp")
		tmp.write_text(value, encoding="utf-8")
		os.replace(tmp, path)
		self._mtimes[key] = self._mtime(key)

	def poll(self) -> List[str]:
		"""Notifica ouvintes sobre chaves alteradas por outro processo."""
		changed: List[str] = []
		for key, known in list(self._mtimes.items()):
			current = self._mtime(key)
			if current == known:
				continue
			self._mtimes[key] = current
			value = None
			if current is not None:
				try:
					value = self._path(key).read_text(encoding="utf-8")
				except OSError as exc:
					logger.warning("Erro relendo a chave %r: %s", key, exc)
					continue
			changed.append(key)
			self.notify(key, value)
		return changed
