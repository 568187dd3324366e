"""
Card and pack collections.

Both collections are stored as `{<items>, schemaVersion}` documents. Data
written before versioning (a bare JSON array) is migrated on load and
written back in the current shape.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from ulid import ULID

from flashdeck.domain.constants import DEFAULT_PACKS, PACK_COLORS, SCHEMA_VERSION
from flashdeck.domain.models import Card, Pack
from flashdeck.infrastructure.persistence import PersistentStore

from .scheduler import is_due
from .schemas import CardSchema, PackSchema, StoredCards, StoredPacks
from .utils.dates import utcnow

logger = logging.getLogger(__name__)


def generate_card_id() -> str:
    """Generate a stable card ID using ULID."""
    return f"card_{ULID()}"


def generate_pack_id() -> str:
    return f"pack_{ULID()}"


def _versioned_items(data: Any, items_key: str) -> tuple[list[Any], int]:
    """Split a stored collection into raw items and its schema version."""
    if isinstance(data, list):
        return list(data), 0
    if isinstance(data, dict) and isinstance(data.get(items_key), list):
        version = data.get("schemaVersion", 0)
        return list(data[items_key]), version if isinstance(version, int) else 0
    raise ValueError(f"expected a list or an object with '{items_key}'")


def parse_stored_cards(data: Any) -> tuple[list[Any], int]:
    return _versioned_items(data, "cards")


def parse_stored_packs(data: Any) -> tuple[list[Any], int]:
    return _versioned_items(data, "packs")


def _validate_items(
    items: list[Any], schema: type[CardSchema] | type[PackSchema], key: str
) -> list:
    valid = []
    for item in items:
        try:
            valid.append(schema.model_validate(item).to_domain())
        except ValidationError as e:
            logger.warning(f"Dropping invalid item from '{key}': {e.error_count()} error(s)")
    return valid


class CardRepository:
    """
    The learner's card set.

    Card identity, creation and pack membership live here; scheduling fields
    only change through `replace_card` with a card produced by the scheduler.
    """

    def __init__(self, store: PersistentStore, key: str):
        self.store = store
        self.key = key

    def load(self) -> list[Card]:
        result = self.store.get_json(self.key, ([], SCHEMA_VERSION), parse_stored_cards)
        if result.error:
            self.store.notify(result.error)

        items, version = result.data
        cards = _validate_items(items, CardSchema, self.key)
        if version < SCHEMA_VERSION:
            logger.info(f"Migrating '{self.key}' from schema v{version} to v{SCHEMA_VERSION}")
            self.save(cards)
        return cards

    def save(self, cards: list[Card]) -> None:
        result = self.store.set_json(self.key, self.dump(cards))
        if result.error:
            self.store.notify(result.error)

    def dump(self, cards: list[Card]) -> dict:
        cards_json = [CardSchema.from_domain(card).dump() for card in cards]
        return StoredCards(cards=cards_json, schema_version=SCHEMA_VERSION).dump()

    def get(self, card_id: str) -> Card | None:
        return next((c for c in self.load() if c.id == card_id), None)

    def add(
        self,
        source_type: str,
        source_id: str,
        pack_ids: list[str] | None = None,
        now: datetime | None = None,
    ) -> Card | None:
        """
        Create a card with default scheduling fields.

        Returns None when a card for the same source already exists.
        """
        cards = self.load()
        if any(c.source_type == source_type and c.source_id == source_id for c in cards):
            return None

        # Validate through the schema so bad source types fail here, not on load
        card = CardSchema(
            id=generate_card_id(),
            source_type=source_type,
            source_id=source_id,
            pack_ids=list(dict.fromkeys(pack_ids or [])),
            created_at=now or utcnow(),
        ).to_domain()
        self.save([*cards, card])
        logger.info(f"Added card {card.id} for {source_type}:{source_id}")
        return card

    def remove(self, card_id: str) -> bool:
        cards = self.load()
        kept = [c for c in cards if c.id != card_id]
        if len(kept) == len(cards):
            return False
        self.save(kept)
        return True

    def replace_card(self, cards: list[Card], updated: Card) -> list[Card]:
        """Return `cards` with the card sharing `updated.id` swapped in."""
        return [updated if c.id == updated.id else c for c in cards]

    def due(self, pack_id: str | None = None, now: datetime | None = None) -> list[Card]:
        cards = self.load()
        if pack_id:
            cards = [c for c in cards if pack_id in c.pack_ids]
        return [c for c in cards if is_due(c, now)]

    def by_pack(self, pack_id: str) -> list[Card]:
        return [c for c in self.load() if pack_id in c.pack_ids]

    def detach_pack(self, pack_id: str) -> int:
        """Remove `pack_id` from every card. Returns how many cards changed."""
        cards = self.load()
        changed = 0
        updated = []
        for card in cards:
            if pack_id in card.pack_ids:
                card = replace(card, pack_ids=[p for p in card.pack_ids if p != pack_id])
                changed += 1
            updated.append(card)
        if changed:
            self.save(updated)
        return changed


class PackRepository:
    """
    Named card collections; the default packs always exist and cannot be deleted.

    With `cards`, deleting a pack also removes it from every card.
    """

    def __init__(self, store: PersistentStore, key: str, cards: CardRepository | None = None):
        self.store = store
        self.key = key
        self.cards = cards

    def load(self) -> list[Pack]:
        result = self.store.get_json(self.key, ([], SCHEMA_VERSION), parse_stored_packs)
        if result.error:
            self.store.notify(result.error)

        items, version = result.data
        packs = _validate_items(items, PackSchema, self.key)
        with_defaults = self._ensure_defaults(packs)
        if version < SCHEMA_VERSION or len(with_defaults) != len(packs):
            self.save(with_defaults)
        return with_defaults

    def save(self, packs: list[Pack]) -> None:
        result = self.store.set_json(self.key, self.dump(packs))
        if result.error:
            self.store.notify(result.error)

    def dump(self, packs: list[Pack]) -> dict:
        packs_json = [PackSchema.from_domain(pack).dump() for pack in packs]
        return StoredPacks(packs=packs_json, schema_version=SCHEMA_VERSION).dump()

    def _ensure_defaults(self, packs: list[Pack]) -> list[Pack]:
        result = list(packs)
        for name, color in DEFAULT_PACKS:
            if not any(p.name == name and p.is_default for p in result):
                result.append(
                    Pack(
                        id=generate_pack_id(),
                        name=name,
                        color=color,
                        created_at=utcnow(),
                        is_default=True,
                    )
                )
        return result

    def default_pack_ids(self) -> list[str]:
        return [p.id for p in self.load() if p.is_default]

    def get(self, pack_id: str) -> Pack | None:
        return next((p for p in self.load() if p.id == pack_id), None)

    def create(self, name: str, color: str | None = None, description: str | None = None) -> Pack:
        """Add a user pack. Raises `ValueError` for an invalid name or color."""
        packs = self.load()
        pack = PackSchema(
            id=generate_pack_id(),
            name=name,
            color=color or PACK_COLORS[len(packs) % len(PACK_COLORS)],
            description=description,
            created_at=utcnow(),
        ).to_domain()
        self.save([*packs, pack])
        return pack

    def rename(self, pack_id: str, name: str) -> bool:
        packs = self.load()
        pack = next((p for p in packs if p.id == pack_id), None)
        if pack is None or pack.is_default:
            return False
        PackSchema.from_domain(replace(pack, name=name))
        self.save([replace(p, name=name) if p.id == pack_id else p for p in packs])
        return True

    def delete(self, pack_id: str) -> bool:
        packs = self.load()
        pack = next((p for p in packs if p.id == pack_id), None)
        if pack is None or pack.is_default:
            return False
        if self.cards is not None:
            detached = self.cards.detach_pack(pack_id)
            logger.info(f"Deleted pack {pack_id}, detached from {detached} card(s)")
        self.save([p for p in packs if p.id != pack_id])
        return True
