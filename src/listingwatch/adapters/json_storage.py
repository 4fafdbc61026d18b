"""JSON file storage adapter.

Keeps every subscriber in one JSON document, suitable for small
deployments that do not want a database file.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List

from listingwatch.core.errors import StorageFailure
from listingwatch.core.models import ClientId, Subscriber, Subscription


class JsonSubscriberStore(Generic[ClientId]):
    """SubscriberStore backed by a single JSON file.

    The in-memory copy only changes after the file write succeeded, so a
    failed save leaves both in their previous state.
    """

    def __init__(self, path: Path, id_parser: Callable[[str], ClientId] = int) -> None:
        self.path = Path(path)
        self._id_parser = id_parser
        self._lock = threading.Lock()
        self._data: Dict[str, List[Dict[str, Any]]] = self._load()

    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageFailure(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StorageFailure(f"{self.path} does not contain a JSON object")
        return {str(key): list(value or []) for key, value in raw.items()}

    def _write(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        tmp = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise StorageFailure(f"Cannot write {self.path}: {exc}") from exc

    def get(self, client_id: ClientId) -> Subscriber[ClientId]:
        key = str(client_id)
        with self._lock:
            if key not in self._data:
                data = dict(self._data)
                data[key] = []
                self._write(data)
                self._data = data
            records = [dict(record) for record in self._data[key]]
        try:
            subscriptions = [Subscription.from_dict(record) for record in records]
        except (KeyError, ValueError) as exc:
            raise StorageFailure(f"Corrupt subscription record for {key}: {exc}") from exc
        return Subscriber(client_id=client_id, subscriptions=subscriptions)

    def save(self, subscriber: Subscriber[ClientId]) -> None:
        key = str(subscriber.client_id)
        records = [sub.to_dict() for sub in subscriber.subscriptions]
        with self._lock:
            data = dict(self._data)
            data[key] = records
            self._write(data)
            self._data = data

    def client_ids(self) -> List[ClientId]:
        with self._lock:
            keys = list(self._data)
        try:
            return [self._id_parser(key) for key in keys]
        except ValueError as exc:
            raise StorageFailure(f"Cannot decode stored client id: {exc}") from exc
