import json
from pathlib import Path

import pytest

from quotawatch.accounts import AccountDirectory
from quotawatch.errors import PersistenceError
from quotawatch.models import Account


class TestAccountDirectory:
    def test_missing_file_is_empty(self, directory: "AccountDirectory") -> "None":
        assert directory.list() == []

    def test_corrupt_file_is_empty(self, directory: "AccountDirectory") -> "None":
        directory.path.write_text("{not json", encoding="utf-8")
        assert directory.list() == []

    def test_save_and_list_keep_order(self, directory: "AccountDirectory") -> "None":
        accounts = [
            Account(id="b", name="Bob"),
            Account(id="a", name="Alice", is_active=True),
        ]
        directory.save(accounts)
        assert [a.id for a in directory.list()] == ["b", "a"]
        assert directory.list()[1].is_active is True

    def test_save_writes_json_array(self, directory: "AccountDirectory") -> "None":
        directory.save([Account(id="a", name="Alice")])
        data = json.loads(directory.path.read_text(encoding="utf-8"))
        assert isinstance(data, list)
        assert data[0]["id"] == "a"

    def test_save_leaves_no_temp_files(self, directory: "AccountDirectory") -> "None":
        directory.save([Account(id="a", name="Alice")])
        directory.save([Account(id="a", name="Alice")])
        assert sorted(p.name for p in directory.path.parent.iterdir()) == [
            "accounts.json"
        ]

    def test_save_failure_raises_persistence_error(self, tmp_path: "Path") -> "None":
        target = tmp_path / "accounts.json"
        target.mkdir()
        with pytest.raises(PersistenceError):
            AccountDirectory(target).save([Account(id="a", name="Alice")])
