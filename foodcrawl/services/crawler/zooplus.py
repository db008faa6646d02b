import re
from urllib.parse import urlparse

from foodcrawl.services.crawler.html_shop import HtmlShopParser

_PRODUCT_PATH = re.compile(r"/\d+$")


class ZooplusParser(HtmlShopParser):
    """Zooplus.de shop; paginates with ``seite`` and product URLs end in an id."""

    source = "zooplus"
    base_url = "https://www.zooplus.de"
    categories = (
        "/shop/hunde/hundefutter_trockenfutter",
        "/shop/hunde/hundefutter_nassfutter",
    )
    page_param = "seite"
    link_selector = 'a[href*="/shop/"]'
    brand_selectors = (
        ".z-product__brand",
        ".product__brand",
        '[itemprop="brand"] [itemprop="name"]',
        '[data-zta="product-brand"]',
    )
    name_selectors = ("h1", ".z-product__name", ".product__title")
    image_selectors = (
        ".z-product__image img",
        ".product__image img",
        '[itemprop="image"]',
        'img[data-zta="productImage"]',
    )
    nutrition_selectors = (
        ".z-tabs__content",
        ".product-info__content",
        ".z-accordion__content",
        '[data-zta*="ingredients"]',
        '[data-zta*="nutrition"]',
        '[class*="ProductAttribute"]',
        '[class*="product-info"]',
        '[class*="description"]',
        ".product-description",
        ".tab-panel",
        '[role="tabpanel"]',
    )

    def is_product_link(self, url: str) -> bool:
        return super().is_product_link(url) and bool(_PRODUCT_PATH.search(urlparse(url).path))
