from foodcrawl.services.crawler.html_shop import HtmlShopParser


class FressnapfParser(HtmlShopParser):
    """Fressnapf.de category listings; product pages live under ``/p/``."""

    source = "fressnapf"
    base_url = "https://www.fressnapf.de"
    categories = (
        "/c/hund/hundefutter/trockenfutter/",
        "/c/hund/hundefutter/nassfutter/",
        "/c/hund/hundefutter/snacks/",
    )
    page_param = "currentPage"
    link_selector = 'a[href*="/p/"]'
    name_selectors = ("h1", ".product-stage__title", '[itemprop="name"]')
    image_selectors = (
        'img[itemprop="image"]',
        ".product-stage__image img",
        '[class*="product-image"] img',
    )
    nutrition_selectors = (
        ".product-description__content",
        ".product-info__content",
        ".tab-content",
        ".accordion__content",
        ".tab-pane",
        '[class*="detail"]',
        '[class*="ingredient"]',
        '[class*="nutrition"]',
        '[data-testid*="ingredients"]',
        '[data-testid*="nutrition"]',
    )
