"""Typed references to persisted entities.

Each entity is addressed by exactly one kind of key. Request payloads are
turned into these at the HTTP boundary and passed around as-is afterwards.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProductRef:
    slug: str

    def __str__(self):
        return self.slug


@dataclass(frozen=True)
class OrderRef:
    id: int

    def __str__(self):
        return str(self.id)


@dataclass(frozen=True)
class GatewayRef:
    """The payment gateway's order id (stored as ``hash_id``)."""

    value: str

    def __str__(self):
        return self.value
