import pytest

from slimdb.context import Context
from slimdb.dispatcher import handle_query
from slimdb.schema import DatabaseError
from slimdb.table import Table


@pytest.fixture
def context(tmp_path):
    ctx = Context(tmp_path)
    handle_query(ctx, "CREATE DATABASE shop;")
    handle_query(ctx, "USE shop;")
    handle_query(ctx, "CREATE TABLE items (id INT, name STRING(8));")
    return ctx


def rows(context):
    return Table.from_schema("items", "shop", context.root).select_all()


def test_use_switches_database(context):
    assert context.current_database == "shop"
    assert context.transaction.is_database_given


def test_begin_starts_transaction(context):
    assert handle_query(context, "begin;") == "Transaction started."
    assert context.transaction.in_transaction


def test_begin_twice_raises(context):
    handle_query(context, "BEGIN")
    with pytest.raises(DatabaseError):
        handle_query(context, "BEGIN")


def test_insert_outside_transaction_writes(context):
    handle_query(context, 'INSERT INTO items VALUES (1, "pen");')
    assert rows(context) == [["1", "pen"]]


def test_logged_insert_applied_on_commit(context):
    handle_query(context, "BEGIN;")
    assert handle_query(context, 'INSERT INTO items VALUES (1, "pen");') == "INSERT operation logged."
    assert rows(context) == []
    assert handle_query(context, "COMMIT;") == "Transaction committed successfully."
    assert rows(context) == [["1", "pen"]]
    assert not context.transaction.in_transaction


def test_rollback_discards_changes(context):
    handle_query(context, "BEGIN")
    handle_query(context, "INSERT INTO items VALUES (1, pen)")
    assert handle_query(context, "ROLLBACK") == "Transaction rolled back completely."
    assert rows(context) == []
    assert context.transaction.entries == ()


def test_logged_update_entry(context):
    handle_query(context, "BEGIN")
    handle_query(context, 'UPDATE items SET name = "ink" WHERE id = 1;')
    entry = context.transaction.entries[0]
    assert entry.column == "name"
    assert entry.new_values == ("ink",)
    assert entry.where_clause == "id = 1"


def test_logged_delete_applied_on_commit(context):
    handle_query(context, "INSERT INTO items VALUES (1, pen)")
    handle_query(context, "INSERT INTO items VALUES (2, cup)")
    handle_query(context, "BEGIN")
    handle_query(context, "KILL FROM items WHERE id = 1;")
    assert context.transaction.entries[0].where_clause == "id = 1"
    handle_query(context, "COMMIT")
    assert rows(context) == [["2", "cup"]]


def test_checkpoints(context):
    handle_query(context, "BEGIN")
    created = handle_query(context, "CHECKPOINT CREATE a;")
    assert created == "Created checkpoint 'a' at position 0"
    handle_query(context, "INSERT INTO items VALUES (1, pen)")
    assert len(context.transaction.entries) == 1
    handle_query(context, "CHECKPOINT ROLLBACK TO a")
    assert context.transaction.entries == ()
    listing = handle_query(context, "CHECKPOINT LIST")
    assert "- a (current)" in listing.splitlines()


def test_checkpoint_list_empty(context):
    handle_query(context, "BEGIN")
    assert handle_query(context, "CHECKPOINT LIST;") == (
        "No checkpoints exist in the current transaction."
    )


def test_create_database_refused_in_transaction(context):
    handle_query(context, "BEGIN")
    with pytest.raises(DatabaseError, match="not allowed inside a transaction"):
        handle_query(context, "CREATE DATABASE other;")


def test_second_use_in_transaction_refused(context):
    handle_query(context, "BEGIN")
    with pytest.raises(DatabaseError, match="only one database"):
        handle_query(context, "USE shop;")


def test_insert_in_transaction_without_database(tmp_path):
    ctx = Context(tmp_path)
    handle_query(ctx, "BEGIN")
    with pytest.raises(DatabaseError, match="No database selected"):
        handle_query(ctx, "INSERT INTO items VALUES (1, pen)")


def test_delete_without_database_refused(tmp_path):
    ctx = Context(tmp_path)
    with pytest.raises(DatabaseError, match="No database selected"):
        handle_query(ctx, "KILL FROM items WHERE id = 1")


def test_commit_outside_transaction_unsupported(context):
    with pytest.raises(DatabaseError, match="Unsupported or invalid query"):
        handle_query(context, "COMMIT")


def test_unsupported_query(context):
    with pytest.raises(DatabaseError, match="Unsupported or invalid query"):
        handle_query(context, "DROP TABLE items")


def test_show_tables_lists_table(context):
    output = handle_query(context, "SHOW TABLES;")
    assert any(line.startswith("items") for line in output.splitlines())


def test_find_routes_to_select(context):
    handle_query(context, "INSERT INTO items VALUES (3, mug)")
    output = handle_query(context, "FIND * FROM items;")
    assert "mug" in output