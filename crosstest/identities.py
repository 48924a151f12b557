"""Entity id generation.

Client and server allocate ids from disjoint sets (odd and even) so ids made
on either side of a connection never collide.
"""

import itertools
from enum import Enum


class IdKind(Enum):
    CLIENT = "Client"
    SERVER = "Server"


class Identities:
    def __init__(self, kind: IdKind):
        self.kind = kind
        start = 1 if kind is IdKind.CLIENT else 2
        self._ids = itertools.count(start, 2)

    def next(self) -> int:
        return next(self._ids)

    def __repr__(self) -> str:
        return f"Identities({self.kind.value})"
