"""A small order-4 B+ tree index mapping string keys to row offsets."""

from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass, field
from typing import BinaryIO

logger = logging.getLogger(__name__)

ORDER = 4

_BOOL = struct.Struct("<?")
_SIZE = struct.Struct("<Q")
_U64 = struct.Struct("<Q")

_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1

_WHITESPACE = " \t\n\v\f\r"


def trim(text: str) -> str:
    """Strip leading and trailing ASCII whitespace."""
    return text.strip(_WHITESPACE)


def _parse_int(text: str) -> int:
    """Parse a leading 32-bit integer the way the storage layer expects."""
    match = _INT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def _encode(key: str) -> bytes:
    return key.encode("utf-8", "surrogateescape")


def _decode(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


@dataclass
class _Node:
    is_leaf: bool = True
    keys: list[str] = field(default_factory=list)
    values: list[list[int]] = field(default_factory=list)
    children: list["_Node"] = field(default_factory=list)
    next: "_Node | None" = None


class BPlusTree:
    """Index over one column; keys compare numerically for INT columns."""

    def __init__(self, col_type: str) -> None:
        self.col_type = col_type
        self._root: _Node | None = _Node(True)

    def compare_keys(self, a: str, b: str) -> int:
        """Return -1, 0 or 1 comparing two keys by the column type."""
        a, b = trim(a), trim(b)
        if self.col_type == "INT":
            try:
                return _sign(_parse_int(a), _parse_int(b))
            except ValueError as exc:
                logger.debug("int comparison failed (%s), comparing as text", exc)
        return _sign(a, b)

    def _split_child(self, parent: _Node, index: int, child: _Node) -> None:
        if len(child.keys) < ORDER:
            raise RuntimeError("Child node not full in splitChild")
        new_node = _Node(child.is_leaf)
        new_node.next = child.next
        child.next = new_node

        mid = (ORDER - 1) // 2
        mid_key = child.keys[mid]

        new_node.keys = child.keys[mid + 1:]
        new_node.values = child.values[mid + 1:]
        del child.keys[mid:]
        del child.values[mid:]

        if not child.is_leaf:
            new_node.children = child.children[mid + 1:]
            del child.children[mid + 1:]

        parent.keys.insert(index, mid_key)
        parent.values.insert(index, [])
        parent.children.insert(index + 1, new_node)

    def _insert_non_full(self, node: _Node, key: str, offset: int) -> None:
        key = trim(key)
        if node.is_leaf:
            for stored_key, offsets in zip(node.keys, node.values):
                if stored_key == key:
                    offsets.append(offset)
                    return
            position = len(node.keys)
            while position > 0 and self.compare_keys(key, node.keys[position - 1]) < 0:
                position -= 1
            node.keys.insert(position, key)
            node.values.insert(position, [offset])
            return

        i = len(node.keys) - 1
        while i >= 0 and self.compare_keys(key, node.keys[i]) < 0:
            i -= 1
        i += 1
        if i >= len(node.children):
            raise RuntimeError(f"Invalid child index {i} in insertNonFull")
        if len(node.children[i].keys) == ORDER:
            self._split_child(node, i, node.children[i])
            if self.compare_keys(key, node.keys[i]) > 0:
                i += 1
        self._insert_non_full(node.children[i], key, offset)

    def search(self, key: str) -> list[int]:
        """Return the offsets stored under ``key``, or an empty list."""
        key = trim(key)
        node = self._root
        while node is not None:
            i = 0
            while i < len(node.keys) and self.compare_keys(key, node.keys[i]) > 0:
                i += 1
            if i < len(node.keys) and node.keys[i] == key:
                return list(node.values[i])
            if node.is_leaf or i >= len(node.children):
                return []
            node = node.children[i]
        return []

    def insert(self, key: str, offset: int) -> None:
        """Add ``offset`` under ``key``, appending to an existing key."""
        key = trim(key)
        try:
            if self._root is None:
                self._root = _Node(True)
            if len(self._root.keys) == ORDER:
                new_root = _Node(False)
                new_root.children.append(self._root)
                self._root = new_root
                self._split_child(new_root, 0, new_root.children[0])
            self._insert_non_full(self._root, key, offset)
        except Exception as exc:
            raise RuntimeError(f"BPlusTree insert failed for key '{key}': {exc}") from exc

    def save(self, stream: BinaryIO) -> None:
        """Write the tree to a binary stream."""
        if stream is None or getattr(stream, "closed", False):
            raise RuntimeError("Output stream is not open for saving BPlusTree")
        try:
            if self._root is not None:
                self._save_node(self._root, stream)
        except Exception as exc:
            raise RuntimeError("Failed to save BPlusTree") from exc

    def _save_node(self, node: _Node, stream: BinaryIO) -> None:
        stream.write(_BOOL.pack(node.is_leaf))
        stream.write(_SIZE.pack(len(node.keys)))
        for key, offsets in zip(node.keys, node.values):
            raw = _encode(trim(key))
            stream.write(_SIZE.pack(len(raw)))
            stream.write(raw)
            stream.write(_SIZE.pack(len(offsets)))
            for value in offsets:
                stream.write(_U64.pack(value))
        if not node.is_leaf:
            stream.write(_SIZE.pack(len(node.children)))
            for child in node.children:
                self._save_node(child, stream)

    def load(self, stream: BinaryIO | None) -> None:
        """Replace the tree with one read from ``stream``; start empty on failure."""
        if stream is None or getattr(stream, "closed", False):
            self._root = _Node(True)
            return
        try:
            root = self._load_node(stream)
        except Exception as exc:
            logger.debug("index load failed: %s", exc)
            root = None
        self._root = root if root is not None else _Node(True)

    @staticmethod
    def _read(stream: BinaryIO, size: int) -> bytes | None:
        data = stream.read(size)
        if data is None or len(data) != size:
            return None
        return data

    def _read_size(self, stream: BinaryIO) -> int | None:
        data = self._read(stream, _SIZE.size)
        return None if data is None else _SIZE.unpack(data)[0]

    def _load_node(self, stream: BinaryIO) -> _Node | None:
        flag = self._read(stream, _BOOL.size)
        if flag is None:
            return None
        node = _Node(bool(flag[0]))
        key_count = self._read_size(stream)
        if key_count is None:
            return None
        for _ in range(key_count):
            key_size = self._read_size(stream)
            if key_size is None:
                return None
            raw = self._read(stream, key_size)
            if raw is None:
                return None
            value_count = self._read_size(stream)
            if value_count is None:
                return None
            offsets = []
            for _ in range(value_count):
                data = self._read(stream, _U64.size)
                if data is None:
                    return None
                offsets.append(_U64.unpack(data)[0])
            node.keys.append(trim(_decode(raw)))
            node.values.append(offsets)
        if not node.is_leaf:
            child_count = self._read_size(stream)
            if child_count is None:
                return None
            for _ in range(child_count):
                child = self._load_node(stream)
                if child is None:
                    return None
                node.children.append(child)
        return node

    def keys(self) -> list[str]:
        """Every key in the tree, node by node in pre-order."""
        collected: list[str] = []

        def walk(node: _Node) -> None:
            collected.extend(node.keys)
            if not node.is_leaf:
                for child in node.children:
                    walk(child)

        if self._root is not None:
            walk(self._root)
        return collected

    def clear(self) -> None:
        """Drop every entry."""
        self._root = None