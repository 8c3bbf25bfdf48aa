# tests/test_storage.py
import json
import os

from services.storage import JsonFileStorage, MemoryStorage
from services.store import STORAGE_KEY, DomainStore


def _bump_mtime(path):
	stat = os.stat(path)
	os.utime(path, (stat.st_atime + 10, stat.st_mtime + 10))


def test_memory_storage_notifies_only_external_writes():
	storage = MemoryStorage()
	events = []
	unsubscribe = storage.subscribe(lambda key, value: events.append((key, value)))

	storage.set("k", "1")
	assert storage.get("k") == "1"
	assert events == []

	storage.external_write("k", "2")
	assert events == [("k", "2")]

	unsubscribe()
	storage.external_write("k", None)
	assert storage.get("k") is None
	assert len(events) == 1


def test_file_storage_round_trip(tmp_path):
	storage = JsonFileStorage(tmp_path / "dados")
	assert storage.get("app-data") is None
	storage.set("app-data", '{"a": 1}')
	assert storage.get("app-data") == '{"a": 1}'
	assert (tmp_path / "dados" / "app-data.json").exists()
	assert storage.poll() == []


def test_file_storage_poll_picks_up_other_process(tmp_path):
	storage = JsonFileStorage(tmp_path)
	store = DomainStore(storage)
	store.add_material("ACM", 100, "per_m2")

	# outro processo grava o mesmo arquivo
	path = tmp_path / f"{STORAGE_KEY}.json"
	snapshot = json.loads(path.read_text(encoding="utf-8"))
	snapshot["materials"][0]["name"] = "ACM Branco"
	path.write_text(json.dumps(snapshot), encoding="utf-8")
	_bump_mtime(path)

	assert storage.poll() == [STORAGE_KEY]
	assert store.data.materials[0].name == "ACM Branco"


def test_file_storage_poll_reports_removed_file(tmp_path):
	storage = JsonFileStorage(tmp_path)
	store = DomainStore(storage)
	store.add_material("ACM", 100, "per_m2")

	os.remove(tmp_path / f"{STORAGE_KEY}.json")
	store.sync()
	assert store.data.materials == []
