"""A small file-backed relational database with B+ tree indexes, transactions and a query shell."""

__version__ = "0.1.0"