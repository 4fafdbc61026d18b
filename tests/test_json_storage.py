from __future__ import annotations

import json

import pytest

from listingwatch.adapters.json_storage import JsonSubscriberStore
from listingwatch.core.errors import StorageFailure
from listingwatch.core.models import Subscription


def test_save_is_visible_to_a_fresh_store(tmp_path) -> None:
    path = tmp_path / "subscribers.json"
    store = JsonSubscriberStore(path)
    subscriber = store.get(7)
    subscriber.subscriptions.append(Subscription("x", "https://example.com/x", ["bike"]))
    store.save(subscriber)

    reloaded = JsonSubscriberStore(path)

    assert reloaded.client_ids() == [7]
    [subscription] = reloaded.get(7).subscriptions
    assert subscription.include_keywords == ["bike"]
    assert json.loads(path.read_text(encoding="utf-8"))["7"][0]["title"] == "x"
    assert not path.with_suffix(".tmp").exists()


def test_snapshots_are_independent_of_the_canonical_copy(tmp_path) -> None:
    store = JsonSubscriberStore(tmp_path / "subscribers.json")
    snapshot = store.get(1)
    snapshot.subscriptions.append(Subscription("x", "https://example.com/x"))

    assert store.get(1).subscriptions == []


def test_failed_write_leaves_state_unchanged(tmp_path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    store = JsonSubscriberStore(blocker / "subscribers.json")

    with pytest.raises(StorageFailure):
        store.get(1)
    assert store.client_ids() == []


def test_corrupt_file_raises_storage_failure(tmp_path) -> None:
    path = tmp_path / "subscribers.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageFailure):
        JsonSubscriberStore(path)
