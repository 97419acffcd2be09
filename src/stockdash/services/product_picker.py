"""Product selector state: server-paged products plus on-demand search results.

The picker holds the pages loaded so far and, while the user types, a
separate list of search hits. What is shown merges the two: loaded matches
first, then search hits not already loaded.
"""
from __future__ import annotations

from dataclasses import dataclass

from stockdash.domain.errors import NotFoundError
from stockdash.domain.models import Product
from stockdash.domain.money import parse_money

MIN_QUERY_LENGTH = 2
SEARCH_LIMIT = 20
PREVIEW_SIZE = 10


@dataclass(frozen=True)
class PickedProduct:
    product: Product
    unit_price: float


class ProductPicker:
    def __init__(self, repo, page_size: int = 50):
        self.repo = repo
        self.page_size = int(page_size)
        self.loaded: list[Product] = []
        self.search_results: list[Product] = []
        self.query = ""
        self.has_more = True

    def load_more(self) -> list[Product]:
        if not self.has_more:
            return []
        page = self.repo.list_products_page(len(self.loaded), self.page_size)
        known = {p.id for p in self.loaded}
        fresh = [p for p in page if p.id not in known]
        self.loaded.extend(fresh)
        if len(page) < self.page_size:
            self.has_more = False
        return fresh

    def reset(self) -> None:
        self.loaded = []
        self.search_results = []
        self.query = ""
        self.has_more = True

    def search(self, query: str) -> list[Product]:
        self.query = query or ""
        term = self.query.strip()
        if len(term) < MIN_QUERY_LENGTH:
            self.search_results = []
            return []
        self.search_results = self.repo.search_products(term, limit=SEARCH_LIMIT)
        return self.search_results

    @staticmethod
    def _matches(product: Product, term: str) -> bool:
        return any(term in (value or "").lower() for value in (product.name, product.sku, product.barcode, product.category))

    def display_products(self) -> list[Product]:
        term = self.query.strip().lower()
        if term and self.search_results:
            local = [p for p in self.loaded if self._matches(p, term)]
            seen = {p.id for p in self.loaded}
            extra = []
            for p in self.search_results:
                if p.id not in seen:
                    seen.add(p.id)
                    extra.append(p)
            return local + extra
        if term:
            return [p for p in self.loaded if self._matches(p, term)]
        return self.loaded[:PREVIEW_SIZE]

    def select(self, product_id: int) -> PickedProduct:
        pid = int(product_id)
        for p in list(self.loaded) + list(self.search_results):
            if p.id == pid:
                self.query = ""
                self.search_results = []
                return PickedProduct(product=p, unit_price=parse_money(p.purchase_price))
        raise NotFoundError(f"Product {product_id} is not in the picker.")
