import pytest

from slimdb.mutations import delete_where, find_foreign_key_reference, update_where
from slimdb.schema import Column, DatabaseError
from slimdb.table import Table


def make_users(root, indexed_name=False):
    return Table(
        "users",
        [
            Column("id", "INT", 10, is_primary_key=True),
            Column("name", "STRING", 8, is_indexed=indexed_name),
        ],
        "shop",
        root,
    )


def make_orders(root):
    return Table(
        "orders",
        [
            Column("oid", "INT", 10, is_primary_key=True),
            Column("user_id", "INT", 10, is_foreign_key=True, ref_table="users", ref_column="id"),
        ],
        "shop",
        root,
    )


def make_items(root, indexed_label=False):
    table = Table(
        "items",
        [
            Column("id", "INT", 10, is_primary_key=True),
            Column("qty", "INT", 10),
            Column("label", "STRING", 6, is_indexed=indexed_label),
        ],
        "shop",
        root,
    )
    table.insert(["1", "3", "pen"])
    table.insert(["2", "7", "cup"])
    return table


def test_delete_removes_matching_rows(tmp_path):
    users = make_users(tmp_path)
    for row in (["1", "ann"], ["2", "bob"], ["3", "cid"]):
        users.insert(row)
    assert delete_where(users, "id = 2") == 1
    assert users.select_all() == [["1", "ann"], ["3", "cid"]]


def test_delete_with_no_match_keeps_everything(tmp_path):
    users = make_users(tmp_path)
    users.insert(["1", "ann"])
    assert delete_where(users, "id = 9") == 0
    assert users.select_all() == [["1", "ann"]]


def test_delete_requires_condition(tmp_path):
    users = make_users(tmp_path)
    with pytest.raises(DatabaseError):
        delete_where(users, "")


def test_delete_rejects_unknown_column(tmp_path):
    users = make_users(tmp_path)
    users.insert(["1", "ann"])
    with pytest.raises(DatabaseError):
        delete_where(users, "age = 3")
    assert users.select_all() == [["1", "ann"]]


def test_foreign_key_reference_found(tmp_path):
    users = make_users(tmp_path)
    users.insert(["1", "ann"])
    users.insert(["2", "bob"])
    orders = make_orders(tmp_path)
    orders.insert(["10", "1"])
    assert find_foreign_key_reference(users, "1") == ("orders", "user_id")
    assert find_foreign_key_reference(users, "2") is None


def test_delete_blocked_by_reference(tmp_path):
    users = make_users(tmp_path)
    users.insert(["1", "ann"])
    orders = make_orders(tmp_path)
    orders.insert(["10", "1"])
    with pytest.raises(DatabaseError, match="referenced by foreign key"):
        delete_where(users, "id = 1")
    assert users.select_all() == [["1", "ann"]]


def test_delete_rebuilds_index(tmp_path):
    users = make_users(tmp_path, indexed_name=True)
    users.insert(["1", "ann"])
    users.insert(["2", "bob"])
    delete_where(users, "id = 1")
    reopened = Table.from_schema("users", "shop", tmp_path)
    assert reopened.indexes["name"].search("ann") == []
    assert reopened.indexes["name"].search("bob") == [0]


def test_delete_into_other_file(tmp_path):
    users = make_users(tmp_path)
    users.insert(["1", "ann"])
    users.insert(["2", "bob"])
    copy = tmp_path / "copy.db"
    copy.write_bytes(users.file_path.read_bytes())
    assert delete_where(users, "id = 1", copy) == 1
    assert len(users.select_all()) == 2
    assert copy.stat().st_size == users.row_size()


def test_update_changes_matching_rows(tmp_path):
    items = make_items(tmp_path)
    size = items.file_path.stat().st_size
    assert update_where(items, "qty", "9", "id = 2") == 1
    rows = items.select_all()
    assert [row[1] for row in rows] == ["3", "9"]
    assert [row[2].rstrip() for row in rows] == ["pen", "cup"]
    assert items.file_path.stat().st_size == size


def test_update_with_comparison(tmp_path):
    items = make_items(tmp_path)
    assert update_where(items, "label", "box", "qty > 2") == 2
    assert [row[2].rstrip() for row in items.select_all()] == ["box", "box"]


def test_update_string_condition_after_padding(tmp_path):
    items = make_items(tmp_path)
    update_where(items, "qty", "1", "id = 1")
    assert update_where(items, "qty", "5", "label = cup") == 1
    assert [row[1] for row in items.select_all()] == ["1", "5"]


def test_update_rebuilds_index(tmp_path):
    items = make_items(tmp_path, indexed_label=True)
    update_where(items, "label", "mug", "id = 2")
    reopened = Table.from_schema("items", "shop", tmp_path)
    assert reopened.indexes["label"].search("mug") == [items.row_size()]
    assert reopened.indexes["label"].search("cup") == []


@pytest.mark.parametrize(
    "column, value, where",
    [
        ("missing", "1", "id = 1"),
        ("id", "5", "id = 1"),
        ("qty", "abc", "id = 1"),
        ("label", "toolongvalue", "id = 1"),
        ("qty", "4", ""),
        ("qty", "4", "nope = 1"),
    ],
)
def test_update_errors(tmp_path, column, value, where):
    items = make_items(tmp_path)
    before = items.file_path.read_bytes()
    with pytest.raises(DatabaseError):
        update_where(items, column, value, where)
    assert items.file_path.read_bytes() == before


def test_update_not_null(tmp_path):
    table = Table(
        "notes",
        [Column("id", "INT", 10), Column("body", "STRING", 4, is_not_null=True)],
        "shop",
        tmp_path,
    )
    table.insert(["1", "hi"])
    with pytest.raises(DatabaseError, match="cannot be null"):
        update_where(table, "body", "", "id = 1")


def test_update_foreign_key_checked(tmp_path):
    users = make_users(tmp_path)
    users.insert(["1", "ann"])
    orders = make_orders(tmp_path)
    orders.insert(["10", "1"])
    with pytest.raises(DatabaseError):
        update_where(orders, "user_id", "5", "oid = 10")
    users.insert(["2", "bob"])
    assert update_where(orders, "user_id", "2", "oid = 10") == 1
    assert orders.select_all() == [["10", "2"]]


def test_update_rejects_corrupted_file(tmp_path):
    items = make_items(tmp_path)
    with open(items.file_path, "ab") as handle:
        handle.write(b"x")
    with pytest.raises(DatabaseError, match="Corrupted"):
        update_where(items, "qty", "1", "id = 1")