import pytest

from slimdb.context import Context
from slimdb.ddl import (
    handle_create_database,
    handle_create_index,
    handle_create_table,
    handle_describe_table,
    handle_show_tables,
    handle_use_database,
    parse_column_definitions,
    validate_foreign_key,
)
from slimdb.schema import DatabaseError, load_schema
from slimdb.table import Table


@pytest.fixture
def context(tmp_path):
    return Context(tmp_path)


@pytest.fixture
def shop(context):
    handle_create_database(context, "CREATE DATABASE shop;")
    handle_use_database(context, "USE shop;")
    return context


def test_create_database_makes_directories(context, tmp_path):
    message = handle_create_database(context, "CREATE DATABASE shop;")
    assert message == "Database 'shop' created successfully."
    assert (tmp_path / "databases" / "shop" / "data").is_dir()


def test_create_database_twice_fails(context):
    handle_create_database(context, "CREATE DATABASE shop")
    with pytest.raises(DatabaseError, match="already exists"):
        handle_create_database(context, "CREATE DATABASE shop")


def test_create_database_bad_syntax(context):
    with pytest.raises(DatabaseError, match="Invalid CREATE DATABASE syntax"):
        handle_create_database(context, "CREATE DATABASE two words")


def test_use_database_switches(context):
    handle_create_database(context, "CREATE DATABASE shop;")
    handle_use_database(context, "use shop;")
    assert context.current_database == "shop"
    assert context.transaction.is_database_given is True


def test_use_missing_database_fails(context):
    with pytest.raises(DatabaseError, match="does not exist"):
        handle_use_database(context, "USE nowhere;")
    assert context.current_database == "default"


def test_show_tables_empty_and_filled(shop):
    assert handle_show_tables(shop, "SHOW TABLES") == "No tables found in database 'shop'.\n"
    handle_create_table(shop, "CREATE TABLE zeta (id INT);")
    handle_create_table(shop, "CREATE TABLE alpha (id INT);")
    lines = handle_show_tables(shop, "SHOW TABLES").splitlines()
    assert [line.rstrip("|").strip() for line in lines[2:]] == ["alpha", "zeta"]


def test_show_tables_without_data_dir(context):
    context.current_database = "ghost"
    with pytest.raises(DatabaseError, match="data directory not found"):
        handle_show_tables(context, "SHOW TABLES")


def test_parse_column_definitions(shop):
    columns = parse_column_definitions(
        shop, "id INT PRIMARY KEY, name STRING(20) NOT NULL UNIQUE, tag STRING(5) INDEXED", "shop"
    )
    assert [c.name for c in columns] == ["id", "name", "tag"]
    assert columns[0].type == "INT" and columns[0].size == 10
    assert columns[0].is_primary_key
    assert columns[1].type == "STRING" and columns[1].size == 20
    assert columns[1].is_not_null and columns[1].is_unique
    assert columns[2].is_indexed and not columns[2].is_unique


def test_parse_unknown_type(shop):
    with pytest.raises(DatabaseError, match="Unknown type: FLOAT"):
        parse_column_definitions(shop, "x FLOAT", "shop")


def test_foreign_key_definition(shop):
    handle_create_table(shop, "CREATE TABLE users (id INT PRIMARY KEY);")
    columns = parse_column_definitions(shop, "uid INT FOREIGN KEY REFERENCES users(id)", "shop")
    assert columns[0].is_foreign_key
    assert (columns[0].ref_table, columns[0].ref_column) == ("users", "id")


def test_foreign_key_errors(shop):
    handle_create_table(shop, "CREATE TABLE users (id INT PRIMARY KEY);")
    with pytest.raises(DatabaseError, match="Expected REFERENCES"):
        parse_column_definitions(shop, "uid INT FOREIGN KEY users(id)", "shop")
    with pytest.raises(DatabaseError, match="Invalid FOREIGN KEY reference format"):
        parse_column_definitions(shop, "uid INT FOREIGN KEY REFERENCES users", "shop")
    with pytest.raises(DatabaseError, match="Expected table"):
        parse_column_definitions(shop, "uid INT FOREIGN KEY REFERENCES", "shop")


def test_validate_foreign_key(shop):
    handle_create_table(shop, "CREATE TABLE users (id INT PRIMARY KEY);")
    validate_foreign_key(shop, "users", "id", "shop")
    with pytest.raises(DatabaseError, match="Referenced column 'email'"):
        validate_foreign_key(shop, "users", "email", "shop")
    with pytest.raises(DatabaseError, match="Referenced table 'ghosts'"):
        validate_foreign_key(shop, "ghosts", "id", "shop")


def test_create_table_writes_schema(shop, tmp_path):
    message = handle_create_table(
        shop, "CREATE TABLE items (id INT PRIMARY KEY, label STRING(12));"
    )
    assert message.endswith("with 2 columns.")
    columns = load_schema(tmp_path / "databases" / "shop" / "data" / "items.schema")
    assert [(c.name, c.type, c.size) for c in columns] == [("id", "INT", 10), ("label", "STRING", 12)]


def test_create_table_in_default_creates_database(context, tmp_path):
    message = handle_create_table(context, "CREATE TABLE notes (body STRING(8));")
    assert "'notes'" in message
    assert "'default'" in message
    assert message.endswith("with 1 columns.")
    data_dir = tmp_path / "databases" / "default" / "data"
    assert (data_dir / "notes.db").exists()
    columns = load_schema(data_dir / "notes.schema")
    assert [(c.name, c.type, c.size) for c in columns] == [("body", "STRING", 8)]


def test_create_table_bad_syntax(shop):
    with pytest.raises(DatabaseError, match="Invalid CREATE TABLE syntax"):
        handle_create_table(shop, "CREATE TABLE items;")


def test_describe_table(shop):
    handle_create_table(shop, "CREATE TABLE items (id INT PRIMARY KEY NOT NULL, label STRING(12));")
    text = handle_describe_table(shop, "DESC items;")
    lines = text.splitlines()
    assert lines[0] == "Table: items"
    id_cells = [cell.strip() for cell in lines[3].split("|")]
    assert id_cells[:4] == ["id", "INT", "10", "PRIMARY_KEY NOT_NULL"]
    label_cells = [cell.strip() for cell in lines[4].split("|")]
    assert label_cells[:4] == ["label", "STRING(12)", "12", "NONE"]


def test_describe_missing_table(shop):
    with pytest.raises(DatabaseError, match="Schema for table 'ghost'"):
        handle_describe_table(shop, "DESCRIBE ghost")


def test_create_index(shop):
    handle_create_table(shop, "CREATE TABLE items (id INT, label STRING(12));")
    table = Table.from_schema("items", "shop", shop.root)
    table.insert(["1", "apple"])
    table.insert(["2", "pear"])
    handle_create_index(shop, "CREATE INDEX ON items(label);")
    reloaded = Table.from_schema("items", "shop", shop.root)
    assert [c.is_indexed for c in reloaded.columns] == [False, True]
    assert reloaded.indexes["label"].search("pear") == [reloaded.row_size()]


def test_create_index_unknown_column(shop):
    handle_create_table(shop, "CREATE TABLE items (id INT);")
    with pytest.raises(DatabaseError, match="Column 'nope' not found"):
        handle_create_index(shop, "CREATE INDEX ON items(nope)")
    with pytest.raises(DatabaseError, match="Invalid CREATE INDEX syntax"):
        handle_create_index(shop, "CREATE INDEX items")