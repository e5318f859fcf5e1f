# secondhand_search/filters/product_validator.py

"""Product validation: drop unusable listings before merging."""

import logging

from secondhand_search.config.settings import Settings
from secondhand_search.models.product import Product

logger = logging.getLogger("secondhand_search.filters")


class ProductValidator:
    """Validate products and drop those with missing essential fields."""

    @staticmethod
    def validate(
        products: list[Product],
    ) -> tuple[list[Product], int]:
        """Drop products with blank/short titles or no listing URL.

        A price of 0 means "unknown" (가격 문의) and is kept.
        Returns the valid products and the count of dropped items.
        """
        valid: list[Product] = []
        dropped = 0

        for product in products:
            if len(product.title.strip()) < Settings.MIN_TITLE_LENGTH:
                logger.debug(
                    "Dropped product with empty/short title "
                    "(source=%s, url=%s)",
                    product.source,
                    product.product_url,
                )
                dropped += 1
                continue
            if not product.product_url.strip():
                logger.debug(
                    "Dropped product without URL "
                    "(title=%s, source=%s)",
                    product.title,
                    product.source,
                )
                dropped += 1
                continue
            valid.append(product)

        if dropped:
            logger.info(
                "Validation dropped %d invalid products",
                dropped,
            )

        return valid, dropped
