import uuid
from collections import defaultdict
from typing import Callable

# Takes a kind ("table", "field", "relationship") and returns a fresh id
IdGenerator = Callable[[str], str]


def uuid_ids(kind: str) -> str:
    """Default generator: random, globally unique ids"""
    return f"{kind}-{uuid.uuid4().hex}"


class SequentialIds:
    """Deterministic generator for tests: table-1, field-1, field-2, ..."""

    def __init__(self):
        self.counters = defaultdict(int)

    def __call__(self, kind: str) -> str:
        self.counters[kind] += 1
        return f"{kind}-{self.counters[kind]}"
