# secondhand_search/models/product.py

"""Product data models for inter-module data flow."""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Source(str, Enum):
    """Marketplaces a Product can belong to."""

    DANGGEUN = "danggeun"
    BUNJANG = "bunjang"
    JUNGGONARA = "junggonara"
    COUPANG = "coupang"  # price-comparison reference only


SOURCE_LABELS: dict[str, str] = {
    Source.DANGGEUN.value: "당근마켓",
    Source.BUNJANG.value: "번개장터",
    Source.JUNGGONARA.value: "중고나라",
    Source.COUPANG.value: "쿠팡",
}

_sequence = itertools.count()


def make_product_id(source: str, key: str | int = "") -> str:
    """Generate an opaque id: source, millisecond timestamp, sequence.

    Ids are unique within a process and are not stable across
    scrapes of the same listing.
    """
    stamp = int(time.time() * 1000)
    seq = next(_sequence)
    if key != "":
        return f"{source}-{key}-{stamp}-{seq}"
    return f"{source}-{stamp}-{seq}"


# Wire names for the optional enrichment fields.
_OPTIONAL_FIELDS: dict[str, str] = {
    "location": "location",
    "description": "description",
    "condition": "condition",
    "seller_name": "sellerName",
    "timestamp": "timestamp",
    "specs": "specs",
}


@dataclass
class Product:
    """A single normalised listing from any marketplace."""

    id: str
    title: str
    price: int
    price_text: str
    source: str
    product_url: str
    image_url: str = ""
    location: str | None = None
    description: str | None = None
    condition: str | None = None
    seller_name: str | None = None
    timestamp: str | None = None
    specs: dict[str, str] | None = None

    @property
    def has_price(self) -> bool:
        """True when the numeric price is known."""
        return self.price > 0

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the camelCase shape handed to collaborators."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "priceText": self.price_text,
            "source": self.source,
            "imageUrl": self.image_url,
            "productUrl": self.product_url,
        }
        for attr, wire in _OPTIONAL_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[wire] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        """Rebuild a Product from its wire shape."""
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            price=int(data.get("price", 0) or 0),
            price_text=str(data.get("priceText", "")),
            source=str(data.get("source", "")),
            product_url=str(data.get("productUrl", "")),
            image_url=str(data.get("imageUrl", "") or ""),
            **{
                attr: data.get(wire)
                for attr, wire in _OPTIONAL_FIELDS.items()
            },
        )


@dataclass
class ProductDetail(Product):
    """Rich single-item detail used by the comparison feature."""

    additional_images: list[str] = field(
        default_factory=lambda: list[str]()
    )
    specifications: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    tags: list[str] = field(
        default_factory=lambda: list[str]()
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialise including the detail-only fields."""
        data = super().to_dict()
        data["additionalImages"] = list(self.additional_images)
        data["specifications"] = dict(self.specifications)
        data["tags"] = list(self.tags)
        return data


@dataclass
class ProductSummary:
    """Minimal listing reference handed to the detail extractor."""

    id: str
    title: str
    price: int
    price_text: str
    source: str
    product_url: str
    image_url: str = ""

    @classmethod
    def from_product(cls, product: Product) -> "ProductSummary":
        """Project a search result down to a summary."""
        return cls(
            id=product.id,
            title=product.title,
            price=product.price,
            price_text=product.price_text,
            source=product.source,
            product_url=product.product_url,
            image_url=product.image_url,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductSummary":
        """Parse a summary from the request wire shape."""
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            price=int(data.get("price", 0) or 0),
            price_text=str(data.get("priceText", "")),
            source=str(data.get("source", "")),
            product_url=str(data.get("productUrl", "")),
            image_url=str(data.get("imageUrl", "") or ""),
        )
