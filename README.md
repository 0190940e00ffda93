# slimdb

slimdb is a small relational database that keeps its tables in fixed-width
binary files on disk. It supports B+ tree indexes on chosen columns, and
primary-key, unique, not-null and foreign-key constraints. It also has
transactions with named checkpoints. You use it through an interactive
query shell or call it from Python.

## Installation

```
pip install .
```

The package has no runtime dependencies. To run the tests, install with
`pip install .[test]`.

## The shell

Start the shell with:

```
slimdb
```

Alternatively, name the directory that holds the databases:

```
slimdb --root /path/to/storage
```

Type one query per line at the `>>` prompt. To leave, type `exit` or send
end of input. Databases are stored under `databases/<name>/data/` inside the
root directory, which defaults to the current working directory. If you have
not selected a database, the `default` database is used. `CREATE TABLE`
creates that database when it is missing. When a query fails, the shell
prints `Error: ` and the reason, then carries on.

### Databases and tables

```
CREATE DATABASE shop;
USE shop;
CREATE TABLE customers (id INT PRIMARY KEY, name STRING(20) NOT NULL);
CREATE TABLE orders (oid INT PRIMARY KEY, cid INT FOREIGN KEY REFERENCES customers(id) INDEXED, item STRING(16));
CREATE INDEX ON customers(name);
SHOW TABLES;
DESCRIBE orders;
```

There are two column types:

- `INT` is stored in 10 bytes. Its values must begin with an integer that fits in 32 bits.
- `STRING(n)` is stored in `n` bytes.

A column can carry any of these constraints, written in capitals:
`PRIMARY KEY` (or `PRIMARY_KEY`), `UNIQUE`, `NOT NULL` (or `NOT_NULL`),
`INDEXED`, and `FOREIGN KEY REFERENCES table(column)`. When a table is
created, a foreign-key reference must name an existing table and column.

Each table is kept in three kinds of file:

- `<table>.schema`: the table's schema, as plain text.
- `<table>.db`: the rows, as fixed-width records.
- `<table>.<column>.idx`: the index for each indexed column.

### Reading and changing data

```
INSERT INTO customers VALUES (1, "Ada");
FIND * FROM customers;
FIND * FROM customers WHERE id >= 1 AND NOT name = "Bob";
FIND * FROM orders JOIN customers ON orders.cid = customers.id;
UPDATE orders SET item = "lamp" WHERE oid = 7;
KILL FROM orders WHERE oid = 7;
```

A `WHERE` clause compares values with `=`, `!=`, `>`, `<`, `>=` and `<=`.
Comparisons can be combined with `AND`, `OR`, `NOT` and parentheses.

- Every token must be separated by spaces, and a value cannot contain spaces.
- Two operands are compared as numbers only when both are plain digit strings.
- The first name in the clause must be a column of the table.

The following rules apply to changes:

- `INSERT` checks the number of values, the type and width of each value, `NOT NULL`, uniqueness of primary and unique keys, and that foreign-key values exist in the referenced primary key.
- `UPDATE` cannot change primary-key or unique columns.
- `KILL` refuses to delete a row whose primary key is still referenced by another table.

Indexes are rebuilt after an update or delete that changes rows.

### Transactions

```
BEGIN;
USE shop;
INSERT INTO customers VALUES (2, "Grace");
CHECKPOINT CREATE first;
KILL FROM customers WHERE id = 1;
CHECKPOINT LIST;
CHECKPOINT ROLLBACK TO first;
CHECKPOINT COMMIT TO first;
COMMIT;
```

Inside a transaction, inserts, updates and deletes are only logged. They run
when you commit. Only the simple `WHERE column op value` form is logged.

Select the database with `USE` inside the transaction, before any change.
`USE` is accepted only once per transaction, and `CREATE DATABASE` is
refused while a transaction is open.

`COMMIT` works in three steps:

1. It copies each affected table file to `<table>.db.temp`.
2. It applies the logged changes to those copies.
3. It swaps the copies in, keeping a `.bak` copy until each swap succeeds.

If any step fails, the temporary files are removed, the whole transaction is
rolled back, and the error is reported.

The checkpoint commands work only inside a transaction:

- `CHECKPOINT ROLLBACK TO` drops the changes logged after a checkpoint, along with any later checkpoints.
- `CHECKPOINT COMMIT TO` applies the changes logged before a checkpoint and keeps the rest.

`CLS` clears the screen using an ANSI escape sequence.

## Using it from Python

```python
from slimdb.context import Context
from slimdb.dispatcher import handle_query
from slimdb.schema import DatabaseError

context = Context("/tmp/dbroot")
handle_query(context, "CREATE DATABASE demo;")
handle_query(context, "USE demo;")
handle_query(context, "CREATE TABLE t (id INT PRIMARY KEY, label STRING(8));")
handle_query(context, 'INSERT INTO t VALUES (1, "one");')
print(handle_query(context, "FIND * FROM t;"), end="")

try:
    handle_query(context, 'INSERT INTO t VALUES (1, "again");')
except DatabaseError as exc:
    print(exc)
```

`handle_query` returns the text the shell would print. Every failure raises
`DatabaseError`.

The lower-level pieces can be used on their own:

- `slimdb.bplustree.BPlusTree`: an order-4 index from string keys to row offsets. It supports `insert`, `search`, `keys`, `clear`, and saving to and loading from a binary stream.
- `slimdb.schema`: the `Column` dataclass and the schema file functions `parse_column_line`, `load_schema` and `save_schema`.
- `slimdb.table.Table`: a table's files. Its methods include `Table.from_schema`, `select_all`, `insert` (which returns the byte offset of the new row) and index management.
- `slimdb.mutations`: `delete_where` and `update_where`, which both return the number of rows changed, and `find_foreign_key_reference`.
- `slimdb.queries`: `select_where`, `select_join` and `select_where_expression`, plus `render` to lay out rows as a text table.
- `slimdb.conditions`: the tokenizer and evaluator for `WHERE` expressions.
- `slimdb.transaction.Transaction`: the transaction log and checkpoints, reached through `Context.transaction`.

## What it does not do

slimdb is a single-user, single-process store:

- It has no network server, no locking between processes, and no query language beyond the statements shown above.
- Values are fixed-width strings, and longer input is rejected.
- There is no `NULL` distinct from the empty string.