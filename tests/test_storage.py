import json

import pytest

from inventory_service.errors import StorageError
from inventory_service.storage import InMemoryStorage, JsonFileStorage, get_storage

RECORDS = [
    {
        "id": "a1",
        "product_name": "Widget",
        "quantity": 5,
        "price": 2.5,
        "datetime": "2024-05-01T10:00:00+00:00",
        "total_value": 12.5,
    },
    {
        "id": "b2",
        "product_name": "Gadget é",
        "quantity": 0,
        "price": 9.99,
        "datetime": "2024-05-02T10:00:00+00:00",
        "total_value": 0.0,
    },
]


def test_missing_file_reads_as_empty(file_storage):
    assert not file_storage.path.exists()
    assert file_storage.read_all() == []


def test_blank_file_reads_as_empty(file_storage):
    file_storage.path.parent.mkdir(parents=True)
    file_storage.path.write_text("  \n", encoding="utf-8")
    assert file_storage.read_all() == []


def test_invalid_json_is_an_error(file_storage):
    file_storage.path.parent.mkdir(parents=True)
    file_storage.path.write_text("[{not json", encoding="utf-8")
    with pytest.raises(StorageError, match="Invalid JSON"):
        file_storage.read_all()


def test_non_array_document_is_an_error(file_storage):
    file_storage.path.parent.mkdir(parents=True)
    file_storage.path.write_text('{"id": "a1"}', encoding="utf-8")
    with pytest.raises(StorageError, match="JSON array"):
        file_storage.read_all()


def test_write_creates_directories_and_pretty_prints(file_storage):
    file_storage.write_all(RECORDS)

    text = file_storage.path.read_text(encoding="utf-8")
    assert json.loads(text) == RECORDS
    assert '\n    {\n        "id": "a1"' in text
    # nothing but the data file is left behind
    assert [p.name for p in file_storage.path.parent.iterdir()] == ["products.json"]


def test_write_replaces_whole_collection(file_storage):
    file_storage.write_all(RECORDS)
    file_storage.write_all(RECORDS[:1])
    assert file_storage.read_all() == RECORDS[:1]


def test_read_write_round_trip_is_idempotent(file_storage):
    file_storage.write_all(RECORDS)
    first = file_storage.path.read_text(encoding="utf-8")

    file_storage.write_all(file_storage.read_all())

    assert file_storage.read_all() == RECORDS
    assert file_storage.path.read_text(encoding="utf-8") == first


def test_unserialisable_records_raise_storage_error(file_storage):
    file_storage.write_all(RECORDS)
    with pytest.raises(StorageError, match="Could not write"):
        file_storage.write_all([{"id": object()}])
    # the previous contents survive a failed write
    assert file_storage.read_all() == RECORDS


def test_in_memory_storage_returns_copies():
    storage = InMemoryStorage(RECORDS)
    records = storage.read_all()
    records[0]["quantity"] = 999
    records.append({"id": "zz"})

    assert storage.read_all() == RECORDS
    assert storage.writes == 0


@pytest.mark.parametrize("bad", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_numbers_are_never_written(file_storage, bad):
    file_storage.write_all(RECORDS)
    with pytest.raises(StorageError, match="Could not write"):
        file_storage.write_all([{**RECORDS[0], "total_value": bad}])
    assert "Infinity" not in file_storage.path.read_text(encoding="utf-8")
    assert file_storage.read_all() == RECORDS


def test_get_storage_shares_one_accessor_across_threads():
    from concurrent.futures import ThreadPoolExecutor

    with ThreadPoolExecutor(max_workers=8) as pool:
        accessors = list(pool.map(lambda _: get_storage(), range(16)))

    assert all(a is accessors[0] for a in accessors)
    assert isinstance(accessors[0], JsonFileStorage)
