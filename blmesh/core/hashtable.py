"""
Handle Keyed Map

Chained hash table mapping integer search keys (node, edge or element keys)
to arbitrary payloads.

Used for:
- Edge key -> subdivision node array memoization during one subdivision run
- Element key -> display color tagging

A miss is reported with the ABSENT sentinel rather than None, so a stored
value that happens to be None is still distinguishable from a missing key.
"""

from typing import Generic, Iterator, List, Tuple, TypeVar, Union

V = TypeVar('V')


class _Absent:
    """Sentinel type returned by HandleKeyedMap.content() on a miss."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'ABSENT'

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


class HandleKeyedMap(Generic[V]):
    """
    Open hash table over integer keys with per-bucket chains.

    At most one entry exists per key. The bucket table never shrinks below
    MINIMUM_TABLE_SIZE buckets and is rehashed to a larger size once the
    average chain gets long.
    """

    MINIMUM_TABLE_SIZE = 7
    MAX_AVERAGE_CHAIN = 4

    def __init__(self):
        self._table: List[List[List]] = [[] for _ in range(self.MINIMUM_TABLE_SIZE)]
        self._n_elem = 0

    def __len__(self) -> int:
        return self._n_elem

    def __contains__(self, key: int) -> bool:
        return self.content(key) is not ABSENT

    def __iter__(self) -> Iterator[int]:
        for bucket in self._table:
            for entry in bucket:
                yield entry[0]

    @property
    def num_buckets(self) -> int:
        return len(self._table)

    def _bucket(self, key: int) -> List[List]:
        return self._table[key % len(self._table)]

    def clean_up(self) -> None:
        """Remove all entries and shrink back to the minimum table size."""
        self._table = [[] for _ in range(self.MINIMUM_TABLE_SIZE)]
        self._n_elem = 0

    def update(self, key: int, value: V) -> None:
        """
        Insert a value, or overwrite the value already stored under key.

        Args:
            key: Integer search key
            value: Payload to store
        """
        bucket = self._bucket(key)
        for entry in bucket:
            if entry[0] == key:
                entry[1] = value
                return

        bucket.append([key, value])
        self._n_elem += 1

        if self._n_elem > self.MAX_AVERAGE_CHAIN * len(self._table):
            self._resize(2 * len(self._table) + 1)

    def content(self, key: int) -> Union[V, _Absent]:
        """
        Look up the value stored under key.

        Returns:
            The stored value, or ABSENT if the key was never inserted
        """
        for entry in self._bucket(key):
            if entry[0] == key:
                return entry[1]
        return ABSENT

    def get(self, key: int, default=None):
        """dict-style lookup returning default on a miss."""
        value = self.content(key)
        return default if value is ABSENT else value

    def delete(self, key: int) -> bool:
        """Remove key. Returns True if an entry was removed."""
        bucket = self._bucket(key)
        for i, entry in enumerate(bucket):
            if entry[0] == key:
                del bucket[i]
                self._n_elem -= 1
                return True
        return False

    def items(self) -> Iterator[Tuple[int, V]]:
        for bucket in self._table:
            for key, value in bucket:
                yield key, value

    def _resize(self, new_size: int) -> None:
        new_size = max(new_size, self.MINIMUM_TABLE_SIZE)
        old_table = self._table
        self._table = [[] for _ in range(new_size)]
        for bucket in old_table:
            for entry in bucket:
                self._bucket(entry[0]).append(entry)
