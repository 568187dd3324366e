import pytest

from flashdeck.domain.storage import QuotaExceededError
from flashdeck.infrastructure.adapters import MemoryStorageBackend


def test_basic_operations():
    backend = MemoryStorageBackend(initial={"a": "1"})
    backend.set_item("b", "2")
    backend.remove_item("a")
    backend.remove_item("missing")

    assert backend.get_item("a") is None
    assert backend.get_item("b") == "2"
    assert backend.keys() == ["b"]


def test_capacity_counts_keys_and_utf8_bytes():
    backend = MemoryStorageBackend(capacity_bytes=6)

    # "k" plus three two-byte characters is 7 bytes
    with pytest.raises(QuotaExceededError):
        backend.set_item("k", "ééé")
    assert backend.data == {}

    backend.set_item("k", "éé")
    assert backend.used_bytes() == 5


def test_overwrite_replaces_existing_size():
    backend = MemoryStorageBackend(capacity_bytes=6)
    backend.set_item("k", "12345")
    backend.set_item("k", "54321")
    assert backend.get_item("k") == "54321"
