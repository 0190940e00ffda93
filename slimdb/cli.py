"""Interactive query prompt."""

from __future__ import annotations

import argparse
import sys

from .context import Context
from .dispatcher import handle_query
from .schema import DatabaseError

_FAILURES = (DatabaseError, OSError, RuntimeError, ValueError)


def main(argv: list[str] | None = None) -> int:
    """Read queries from standard input until ``exit`` or end of input."""
    parser = argparse.ArgumentParser(prog="slimdb", description="Run the query prompt.")
    parser.add_argument("--root", default=".", help="directory that holds the databases")
    args = parser.parse_args(argv)

    context = Context(args.root)
    print("SlimDB\nType your query:")
    while True:
        try:
            query = input(">> ")
        except EOFError:
            break
        if query == "exit":
            break
        try:
            output = handle_query(context, query)
        except _FAILURES as exc:
            print(f"Error: {exc}")
            continue
        print(output, end="" if output.endswith("\n") else "\n")
        sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())