# Overview: Immutable product snapshots and a case-insensitive unit-code index for resolution.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from ..codec import decode_pairs


@dataclass(frozen=True)
class ProductRef:
    """Point-in-time view of a catalog product, detached from the DB session."""
    id: int | None
    name: str
    unit_price_cents: int | None = None
    codes: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    @classmethod
    def from_model(cls, product, delimiter: str = ",") -> "ProductRef":
        codes, tags = decode_pairs(product.device_codes, product.device_tags, delimiter)
        return cls(
            id=product.id,
            name=product.name,
            unit_price_cents=product.selling_price_cents,
            codes=tuple(codes),
            tags=tuple(tags),
        )

    def owns(self, code: str) -> bool:
        needle = code.strip().lower()
        return any(c.lower() == needle for c in self.codes)

    def tag_for(self, code: str) -> str:
        needle = code.strip().lower()
        for i, c in enumerate(self.codes):
            if c.lower() == needle:
                return self.tags[i] if i < len(self.tags) else ""
        return ""


class ProductIndex:
    """
    The store's product catalog, indexed by lower-cased unit code.

    When two products list the same code the lowest product id wins, which
    matches SqlStockRepository.find_product_by_code.
    """

    def __init__(self, products: Iterable[ProductRef] = ()):
        self._products: dict[int | None, ProductRef] = {}
        self._by_code: dict[str, ProductRef] = {}
        for product in products:
            self._products[product.id] = product
        self._reindex()

    def _reindex(self) -> None:
        self._by_code = {}
        ordered = sorted(self._products.values(), key=lambda p: (p.id is None, p.id or 0))
        for product in ordered:
            for code in product.codes:
                self._by_code.setdefault(code.lower(), product)

    def add(self, product: ProductRef) -> None:
        """Insert or replace a product (keyed by id)."""
        self._products[product.id] = product
        self._reindex()

    def discard(self, product_id: int | None) -> None:
        if self._products.pop(product_id, None) is not None:
            self._reindex()

    def get(self, product_id: int | None) -> ProductRef | None:
        return self._products.get(product_id)

    def find_by_code(self, code: str) -> ProductRef | None:
        code = (code or "").strip()
        if not code:
            return None
        return self._by_code.get(code.lower())

    def __iter__(self) -> Iterator[ProductRef]:
        return iter(self._products.values())

    def __len__(self) -> int:
        return len(self._products)
