# tests/test_product_validator.py

"""Tests for ProductValidator."""

import unittest

from secondhand_search.filters.product_validator import ProductValidator
from secondhand_search.models.product import Product


def _make(title: str, url: str = "https://x.com/1", price: int = 0) -> Product:
    return Product(
        id="t",
        title=title,
        price=price,
        price_text="가격 문의" if not price else f"{price:,}원",
        source="junggonara",
        product_url=url,
    )


class TestProductValidator(unittest.TestCase):
    """Validation drops only unusable listings."""

    def test_valid_products_pass(self) -> None:
        products = [_make("아이폰 14 프로", price=1000000)]
        valid, dropped = ProductValidator.validate(products)
        self.assertEqual(len(valid), 1)
        self.assertEqual(dropped, 0)

    def test_unknown_price_is_kept(self) -> None:
        """가격 문의 listings (price 0) stay in the results."""
        valid, dropped = ProductValidator.validate([_make("아이폰 14")])
        self.assertEqual(len(valid), 1)
        self.assertEqual(dropped, 0)

    def test_short_title_dropped(self) -> None:
        valid, dropped = ProductValidator.validate([_make("  폰 ")])
        self.assertEqual(valid, [])
        self.assertEqual(dropped, 1)

    def test_missing_url_dropped(self) -> None:
        valid, dropped = ProductValidator.validate(
            [_make("아이폰 14", url="  ")]
        )
        self.assertEqual(valid, [])
        self.assertEqual(dropped, 1)

    def test_order_preserved(self) -> None:
        products = [
            _make("첫번째 상품", url="https://x.com/1"),
            _make("x", url="https://x.com/2"),
            _make("세번째 상품", url="https://x.com/3"),
        ]
        valid, dropped = ProductValidator.validate(products)
        self.assertEqual(
            [p.title for p in valid], ["첫번째 상품", "세번째 상품"]
        )
        self.assertEqual(dropped, 1)


if __name__ == "__main__":
    unittest.main()
