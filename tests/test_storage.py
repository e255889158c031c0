"""
Tests for the key-value storage adapters and the record codec.

Google Sheets is replaced by an in-memory fake worksheet; no API calls.
"""

import json

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from fintra.config.settings import StorageSettings
from fintra.models.finance import FinanceConfig, Goal
from fintra.services.codec import (
    CorruptDataError,
    StorageKeys,
    decode_config,
    decode_goals,
    decode_salary,
    decode_transactions,
    encode_config,
    encode_records,
)
from fintra.services.storage import (
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    StorageError,
    create_key_value_store,
)
from fintra.services.storage.google_sheets import KV_COLUMNS, split_value


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the key-value adapter."""

    def __init__(self):
        self.rows = [list(KV_COLUMNS)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def delete_rows(self, index):
        del self.rows[index - 1]

    def append_rows(self, rows, value_input_option=None):
        self.rows.extend(list(row) for row in rows)


@pytest.fixture
def sheet():
    return FakeWorksheet()


@pytest.fixture
def sheets_store(sheet):
    client = MagicMock()
    client.get_kv_sheet.return_value = sheet
    return GoogleSheetsKeyValueStore(client)


class TestInMemoryStore:
    """Tests for the dict-backed adapter."""

    @pytest.mark.asyncio
    async def test_get_set_delete(self):
        """Test the basic key-value contract."""
        store = InMemoryKeyValueStore()
        assert await store.get("a") is None
        assert await store.set("a", "1") is True
        assert await store.get("a") == "1"
        assert await store.keys() == ["a"]
        assert await store.delete("a") is True
        assert await store.delete("a") is False

    def test_snapshot_is_a_copy(self):
        """Test the snapshot cannot change the store."""
        store = InMemoryKeyValueStore({"k": "v"})
        snapshot = store.snapshot()
        snapshot["k"] = "changed"
        assert store.snapshot() == {"k": "v"}


class TestJsonFileStore:
    """Tests for the JSON file adapter."""

    @pytest.mark.asyncio
    async def test_values_survive_a_new_instance(self, tmp_path):
        """Test data is written to disk."""
        path = tmp_path / "data.json"
        await JsonFileKeyValueStore(path).set("@Fintra:salary", "3500.00")

        reopened = JsonFileKeyValueStore(path)
        assert await reopened.get("@Fintra:salary") == "3500.00"
        assert json.loads(path.read_text(encoding="utf-8")) == {"@Fintra:salary": "3500.00"}

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        """Test a fresh install reads nothing."""
        store = JsonFileKeyValueStore(tmp_path / "nested" / "data.json")
        assert await store.get("anything") is None
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        """Test removing a key."""
        store = JsonFileKeyValueStore(tmp_path / "data.json")
        await store.set("a", "1")
        await store.set("b", "2")
        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.keys() == ["b"]

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_storage_error(self, tmp_path):
        """Test an unreadable file surfaces as StorageError."""
        path = tmp_path / "data.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            await JsonFileKeyValueStore(path).get("a")

    @pytest.mark.asyncio
    async def test_invalidate_rereads_disk(self, tmp_path):
        """Test the cache can be dropped."""
        path = tmp_path / "data.json"
        store = JsonFileKeyValueStore(path)
        await store.set("a", "1")
        path.write_text(json.dumps({"a": "2"}), encoding="utf-8")
        assert await store.get("a") == "1"
        store.invalidate()
        assert await store.get("a") == "2"


class TestGoogleSheetsStore:
    """Tests for the Google Sheets adapter (fake worksheet)."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, sheets_store, sheet):
        """Test a value is stored as one row per part."""
        await sheets_store.set("@Fintra:salary", "3500.00")
        assert await sheets_store.get("@Fintra:salary") == "3500.00"
        assert sheet.rows[1][:3] == ["@Fintra:salary", "0", "3500.00"]

    @pytest.mark.asyncio
    async def test_set_replaces_previous_rows(self, sheets_store, sheet):
        """Test rewriting a key leaves no stale parts."""
        await sheets_store.set("a", "first")
        await sheets_store.set("b", "other")
        await sheets_store.set("a", "second")
        assert await sheets_store.get("a") == "second"
        assert len(sheet.rows) == 3
        assert await sheets_store.keys() == ["b", "a"]

    @pytest.mark.asyncio
    async def test_large_values_are_split(self, sheets_store, sheet):
        """Test values above the cell limit span several rows."""
        value = "x" * 100000
        await sheets_store.set("big", value)
        assert len(sheet.rows) == 4
        assert await sheets_store.get("big") == value

    @pytest.mark.asyncio
    async def test_delete(self, sheets_store):
        """Test removing a key."""
        await sheets_store.set("a", "1")
        assert await sheets_store.delete("a") is True
        assert await sheets_store.get("a") is None
        assert await sheets_store.delete("a") is False

    @pytest.mark.asyncio
    async def test_api_errors_become_storage_errors(self):
        """Test gspread failures are wrapped."""
        client = MagicMock()
        client.get_kv_sheet.side_effect = RuntimeError("quota exceeded")
        store = GoogleSheetsKeyValueStore(client)
        with pytest.raises(StorageError, match="quota exceeded"):
            await store.get("a")

    def test_split_value(self):
        """Test chunking."""
        assert split_value("") == [""]
        assert split_value("abcde", size=2) == ["ab", "cd", "e"]


class TestStorageFactory:
    """Tests for create_key_value_store."""

    def test_memory_backend(self):
        """Test the memory backend selection."""
        store = create_key_value_store(StorageSettings(_env_file=None, backend="memory"))
        assert isinstance(store, InMemoryKeyValueStore)

    def test_json_file_backend(self, tmp_path):
        """Test the default file backend uses the configured path."""
        path = tmp_path / "fintra.json"
        store = create_key_value_store(StorageSettings(_env_file=None, data_path=path))
        assert isinstance(store, JsonFileKeyValueStore)
        assert store.path == path


class TestCodec:
    """Tests for collection encoding and legacy decoding."""

    def test_storage_keys(self):
        """Test the stable key names."""
        keys = StorageKeys()
        assert keys.transactions == "@Fintra:transactions"
        assert keys.contributions == "@Fintra:goalContributions"
        assert keys.legacy_expenses == "@Fintra:expenses"
        assert StorageKeys("test:").salary == "test:salary"

    def test_goals_round_trip(self):
        """Test encoding then decoding keeps every field."""
        goal = Goal(name="Trip", total_target=Decimal("1000"), contribution_value=Decimal("100"))
        decoded, migrated = decode_goals(encode_records([goal]))
        assert decoded == [goal]
        assert migrated == 0

    def test_legacy_expense_is_upcast(self):
        """Test an Expense record from the first version."""
        legacy = json.dumps([{
            "id": 1700000000000,
            "description": "Supermarket",
            "amount": 85.3,
            "date": "2024-11-02T10:00:00.000Z",
            "type": "debit",
        }])
        transactions, migrated = decode_transactions(legacy)
        assert migrated == 1
        transaction = transactions[0]
        assert transaction.id == "1700000000000"
        assert transaction.category.value == "expense"
        assert transaction.is_recurring is False
        assert transaction.amount == Decimal("85.3")

    def test_legacy_goal_monthly_target(self):
        """Test monthlyTarget becomes a fixed contribution policy."""
        legacy = json.dumps([{
            "id": "g1",
            "name": "Car",
            "totalTarget": 20000,
            "monthlyTarget": 500,
            "createdAt": "2024-01-01T00:00:00Z",
        }])
        goals, migrated = decode_goals(legacy)
        assert migrated == 1
        goal = goals[0]
        assert goal.contribution_type.value == "fixed"
        assert goal.contribution_value == Decimal("500")
        assert goal.current_amount == Decimal("0")
        assert goal.is_active is True

    def test_corrupt_collection(self):
        """Test unreadable collections raise CorruptDataError."""
        with pytest.raises(CorruptDataError):
            decode_transactions("not json")
        with pytest.raises(CorruptDataError):
            decode_transactions('{"a": 1}')
        with pytest.raises(CorruptDataError):
            decode_goals('[{"name": "no target"}]')

    def test_salary_and_config(self):
        """Test the scalar values."""
        assert decode_salary(None) == Decimal("0")
        assert decode_salary("3500.5") == Decimal("3500.50")
        with pytest.raises(CorruptDataError):
            decode_salary("abc")

        config = FinanceConfig(goal_contribution_day=10)
        assert decode_config(encode_config(config)) == config
        assert decode_config(None, default_day=5).goal_contribution_day == 5


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
