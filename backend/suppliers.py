from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from models import Product, SupplierProfile

SUPPLIERS: tuple[SupplierProfile, ...] = (
    SupplierProfile(
        id="supplier1",
        name="EastCraft Manufacturing",
        quality_rating=4.0,
        price_multiplier=0.87,
        lead_time_range="45–55",
        lead_time_min=50,
        payment_terms="33% deposit / 33% production approval / 33% before shipping",
        strength="lowest cost and flexible payment structure",
    ),
    SupplierProfile(
        id="supplier2",
        name="PremiumStep Industries",
        quality_rating=4.7,
        price_multiplier=1.30,
        lead_time_range="25–32",
        lead_time_min=28,
        payment_terms="30% deposit / 70% before shipping",
        strength="highest quality rating and lowest defect rate",
    ),
    SupplierProfile(
        id="supplier3",
        name="SwiftMake Footwear Co.",
        quality_rating=4.0,
        price_multiplier=1.21,
        lead_time_range="14–20",
        lead_time_min=17,
        payment_terms="30% deposit / 70% before shipping",
        strength="fastest lead time in the market",
    ),
)

_PRODUCTS_PATH = Path(__file__).parent / "products.json"


def load_products() -> list[Product]:
    data = json.loads(_PRODUCTS_PATH.read_text())
    return [Product(**p) for p in data["products"]]


def get_supplier(id: str) -> SupplierProfile:
    for supplier in SUPPLIERS:
        if supplier.id == id:
            return supplier
    raise ValueError(f"No supplier with id={id}")


class Catalog(BaseModel):
    """Read-only products and supplier profiles handed to a negotiation run."""

    model_config = ConfigDict(frozen=True)

    products: tuple[Product, ...]
    suppliers: tuple[SupplierProfile, ...]

    def product(self, code: str) -> Product:
        for p in self.products:
            if p.code == code:
                return p
        raise KeyError(code)

    def supplier(self, id: str) -> SupplierProfile:
        for s in self.suppliers:
            if s.id == id:
                return s
        raise KeyError(id)

    @property
    def product_codes(self) -> list[str]:
        return [p.code for p in self.products]


def default_catalog() -> Catalog:
    return Catalog(products=tuple(load_products()), suppliers=SUPPLIERS)
