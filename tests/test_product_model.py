# tests/test_product_model.py

"""Tests for the Product, ProductDetail and ProductSummary dataclasses."""

import unittest

from secondhand_search.models.product import (
    SOURCE_LABELS,
    Product,
    ProductDetail,
    ProductSummary,
    Source,
    make_product_id,
)


def _product(**overrides: object) -> Product:
    fields: dict[str, object] = {
        "id": "bunjang-1",
        "title": "아이폰 14 128GB",
        "price": 920000,
        "price_text": "920,000원",
        "source": "bunjang",
        "product_url": "https://www.bunjang.co.kr/products/1",
        "image_url": "https://media.bunjang.co.kr/1.jpg",
    }
    fields.update(overrides)
    return Product(**fields)  # type: ignore[arg-type]


class TestProductModel(unittest.TestCase):
    """Product dataclass unit tests."""

    def test_defaults(self) -> None:
        """Optional enrichment fields default to None."""
        product = _product()
        self.assertIsNone(product.location)
        self.assertIsNone(product.description)
        self.assertIsNone(product.seller_name)

    def test_has_price(self) -> None:
        self.assertTrue(_product().has_price)
        self.assertFalse(
            _product(price=0, price_text="가격 문의").has_price
        )

    def test_to_dict_uses_camel_case(self) -> None:
        data = _product(location="마장동").to_dict()
        self.assertEqual(data["priceText"], "920,000원")
        self.assertEqual(
            data["productUrl"], "https://www.bunjang.co.kr/products/1"
        )
        self.assertEqual(data["location"], "마장동")
        self.assertNotIn("description", data)

    def test_from_dict_round_trips_optional_fields(self) -> None:
        original = _product(location="마장동", timestamp="2026-01-01")
        rebuilt = Product.from_dict(original.to_dict())
        self.assertEqual(rebuilt, original)


class TestProductDetail(unittest.TestCase):
    """Detail-only fields serialise alongside the base fields."""

    def test_to_dict_includes_detail_fields(self) -> None:
        detail = ProductDetail(
            id="d1",
            title="아이폰 14",
            price=0,
            price_text="가격 정보 없음",
            source="junggonara",
            product_url="https://web.joongna.com/product/1",
            additional_images=["https://img/1.jpg"],
            specifications={"플랫폼": "중고나라"},
            tags=["중고나라"],
        )
        data = detail.to_dict()
        self.assertEqual(data["additionalImages"], ["https://img/1.jpg"])
        self.assertEqual(data["specifications"], {"플랫폼": "중고나라"})
        self.assertEqual(data["tags"], ["중고나라"])


class TestProductSummary(unittest.TestCase):
    """Summary projection and request parsing."""

    def test_from_product(self) -> None:
        summary = ProductSummary.from_product(_product())
        self.assertEqual(summary.id, "bunjang-1")
        self.assertEqual(summary.price, 920000)

    def test_from_dict_tolerates_missing_fields(self) -> None:
        summary = ProductSummary.from_dict(
            {"productUrl": "https://x/1", "source": "bunjang"}
        )
        self.assertEqual(summary.price, 0)
        self.assertEqual(summary.title, "")
        self.assertEqual(summary.image_url, "")


class TestProductIds(unittest.TestCase):
    """Opaque id generation."""

    def test_ids_are_unique(self) -> None:
        ids = {make_product_id("danggeun", 0) for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_id_starts_with_source(self) -> None:
        self.assertTrue(make_product_id("bunjang", "123").startswith(
            "bunjang-123-"
        ))

    def test_every_source_has_label(self) -> None:
        for source in Source:
            self.assertIn(source.value, SOURCE_LABELS)


if __name__ == "__main__":
    unittest.main()
