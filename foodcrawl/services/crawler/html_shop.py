import asyncio
import json
import logging
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from foodcrawl.services.crawler.base import BaseSourceParser, CandidateProduct
from foodcrawl.utils.http import SourceFetchError, get_text
from foodcrawl.utils.nutrients import (
    extract_german_additives,
    extract_nutrients_from_text,
    has_core_nutrients,
    sanitize_text,
)

logger = logging.getLogger("foodcrawl.crawler.html_shop")

EAN_PATTERNS = (
    re.compile(r'"gtin\d*"\s*:\s*"(\d{8,14})"', re.I),
    re.compile(r'"ean"\s*:\s*"(\d{8,14})"', re.I),
    re.compile(r"(?:EAN|GTIN)[:\s]*(\d{8,14})", re.I),
    re.compile(r'"sku"\s*:\s*"(\d{8,14})"', re.I),
    re.compile(r'data-ean="(\d{8,14})"', re.I),
)

KNOWN_BRANDS = (
    "royal canin",
    "terra canis",
    "bosch",
    "hills",
    "purina",
    "eukanuba",
    "animonda",
)

_CONSTITUENTS_RE = re.compile(
    r"analytische\s+bestandteile.{0,1000}?(?:protein|fett|faser|asche|feuchte).{0,1000}",
    re.I | re.S,
)


class HtmlShopParser(BaseSourceParser):
    """Shared scraping flow for German pet shops.

    Listing pages for every dog food category are fetched at the cursor's
    page, product links are collected, and each detail page is parsed for
    EAN, brand, name, image and the "Analytische Bestandteile" block.
    Subclasses only describe the shop: URLs, pagination parameter and
    CSS selectors.
    """

    base_url: str
    categories: tuple[str, ...]
    page_param: str
    link_selector: str
    brand_selectors: tuple[str, ...] = ()
    name_selectors: tuple[str, ...] = ("h1", '[itemprop="name"]')
    image_selectors: tuple[str, ...] = ()
    nutrition_selectors: tuple[str, ...] = ()

    def is_product_link(self, url: str) -> bool:
        return urlparse(url).netloc == urlparse(self.base_url).netloc

    async def fetch(self, cursor: int, page_size: int) -> tuple[list[CandidateProduct], int]:
        """Visit every product link on the listing pages at ``cursor``.

        The shop decides how many products a listing page holds, so
        ``page_size`` is not used here. When a listing or product page fails
        with a retryable error the cursor stays on ``page`` and the whole page
        is fetched again later; products already stored come back as
        duplicates.
        """
        page = max(int(cursor or 1), 1)
        products: list[CandidateProduct] = []
        links_found = 0
        failures: list[SourceFetchError] = []
        incomplete = False

        for category in self.categories:
            listing_url = urljoin(self.base_url, category)
            try:
                html = await get_text(
                    self.client, listing_url, params={self.page_param: page}
                )
            except SourceFetchError as e:
                logger.warning("%s listing %s failed: %s", self.source, listing_url, e)
                failures.append(e)
                incomplete = incomplete or e.retryable
                continue

            links = self.extract_product_links(html)
            links_found += len(links)
            logger.info("%s: %d product links in %s", self.source, len(links), category)

            for link in links:
                await self._pause()
                try:
                    detail_html = await get_text(self.client, link)
                except SourceFetchError as e:
                    logger.warning("%s product %s failed: %s", self.source, link, e)
                    incomplete = incomplete or e.retryable
                    continue
                try:
                    product = self.parse_detail(detail_html, link)
                except Exception as e:
                    logger.warning("%s: could not parse %s: %s", self.source, link, e)
                    continue
                if product is not None:
                    products.append(product)

            await self._pause()

        if failures and len(failures) == len(self.categories):
            raise failures[-1]

        if incomplete:
            logger.info("%s page %d incomplete, cursor stays", self.source, page)
            next_cursor = page
        else:
            next_cursor = page + 1 if links_found else page
        return self.dedupe_page(products), next_cursor

    async def _pause(self) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

    def extract_product_links(self, html: str) -> list[str]:
        soup = BeautifulSoup(html, "lxml")
        links: list[str] = []
        for a_tag in soup.select(self.link_selector):
            href = a_tag.get("href")
            if not href:
                continue
            full_url = urljoin(self.base_url, href)
            if self.is_product_link(full_url) and full_url not in links:
                links.append(full_url)
        return links

    def parse_detail(self, html: str, url: str) -> CandidateProduct | None:
        soup = BeautifulSoup(html, "lxml")
        ld_blocks = self._json_ld(soup)

        ean = self._find_ean(html, ld_blocks)
        if not ean:
            logger.info("%s: no EAN found on %s", self.source, url)
            return None

        name = self._first_text(soup, self.name_selectors)
        brand = self._find_brand(soup, ld_blocks, name)

        constituents = self._find_constituents(soup)
        if not constituents:
            logger.info("%s: no analytical constituents for %s", self.source, name or url)
            return None

        nutrients = extract_nutrients_from_text(constituents)
        if not has_core_nutrients(nutrients):
            logger.debug("%s: incomplete nutrient data on %s", self.source, url)
            return None

        return CandidateProduct(
            external_id=ean,
            brand=brand,
            name=name,
            protein=nutrients.get("protein", 0.0),
            fat=nutrients.get("fat", 0.0),
            crude_fiber=nutrients.get("crude_fiber", 0.0),
            ash=nutrients.get("ash", 0.0),
            moisture=nutrients.get("moisture", 0.0),
            additives=extract_german_additives(constituents),
            image_url=self._find_image(soup, ld_blocks, url),
            source_name=self.source,
            source_url=url,
        )

    @staticmethod
    def _json_ld(soup: BeautifulSoup) -> list[dict]:
        blocks: list[dict] = []
        for tag in soup.select('script[type="application/ld+json"]'):
            try:
                data = json.loads(tag.string or "")
            except json.JSONDecodeError:
                continue
            items = data if isinstance(data, list) else [data]
            blocks.extend(item for item in items if isinstance(item, dict))
        return blocks

    @staticmethod
    def _find_ean(html: str, ld_blocks: list[dict]) -> str | None:
        for pattern in EAN_PATTERNS:
            match = pattern.search(html)
            if match:
                return match.group(1)
        for data in ld_blocks:
            for key in ("gtin13", "gtin"):
                if data.get(key):
                    return str(data[key]).strip()
            sku = str(data.get("sku") or "")
            if re.fullmatch(r"\d{8,14}", sku):
                return sku
        return None

    def _find_brand(
        self, soup: BeautifulSoup, ld_blocks: list[dict], name: str | None
    ) -> str | None:
        for data in ld_blocks:
            brand = data.get("brand")
            if isinstance(brand, dict) and brand.get("name"):
                return sanitize_text(brand["name"])
            if isinstance(brand, str) and brand.strip():
                return sanitize_text(brand)

        brand = self._first_text(soup, self.brand_selectors)
        if brand:
            return brand

        if name:
            lowered = name.lower()
            for known in KNOWN_BRANDS:
                if known in lowered:
                    return known.title()
        return None

    def _find_image(
        self, soup: BeautifulSoup, ld_blocks: list[dict], page_url: str
    ) -> str | None:
        image = None
        for data in ld_blocks:
            image = data.get("image")
            if isinstance(image, list):
                image = image[0] if image else None
            if image:
                break

        if not image:
            og = soup.select_one('meta[property="og:image"]')
            if og is not None:
                image = og.get("content")

        if not image:
            for selector in self.image_selectors:
                tag = soup.select_one(selector)
                if tag is not None and (tag.get("src") or tag.get("content")):
                    image = tag.get("src") or tag.get("content")
                    break

        if not image or not isinstance(image, str):
            return None
        return urljoin(page_url, image)

    def _find_constituents(self, soup: BeautifulSoup) -> str | None:
        for selector in self.nutrition_selectors:
            for el in soup.select(selector):
                text = el.get_text(" ", strip=True)
                lowered = text.lower()
                if "analytische bestandteile" in lowered or (
                    "%" in text and ("protein" in lowered or "fett" in lowered)
                ):
                    return text

        page_text = soup.get_text(" ", strip=True)
        match = _CONSTITUENTS_RE.search(page_text)
        return match.group(0) if match else None

    @staticmethod
    def _first_text(soup: BeautifulSoup, selectors: tuple[str, ...]) -> str | None:
        for selector in selectors:
            tag = soup.select_one(selector)
            if tag is not None:
                text = sanitize_text(tag.get_text(" ", strip=True))
                if text:
                    return text
        return None
