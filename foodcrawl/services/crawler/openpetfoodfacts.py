import asyncio
import logging

from foodcrawl.services.crawler.base import BaseSourceParser, CandidateProduct
from foodcrawl.utils.http import SourceFetchError, get_json
from foodcrawl.utils.nutrients import (
    MACRO_FIELDS,
    OPFF_NUTRIENT_ALIASES,
    extract_additives,
    resolve_alias,
    sanitize_text,
)

logger = logging.getLogger("foodcrawl.crawler.openpetfoodfacts")

OPFF_BASE = "https://world.openpetfoodfacts.org"

CATEGORIES = (
    "en:dog-food",
    "de:hundefutter",
    "en:dry-dog-food",
    "en:wet-dog-food",
)

FIELDS = (
    "code,product_name,brands,nutriments,image_url,image_front_url,"
    "image_small_url,ingredients_text,categories_tags"
)


class OpenPetFoodFactsParser(BaseSourceParser):
    """Pull dog food products from the Open Pet Food Facts category API.

    One cursor step is one page across every dog food category. A category
    that fails is skipped as long as another one answered; if all of them
    fail the fetch error is raised so the orchestrator can record it. After
    a retryable category failure the cursor stays on the same page.
    Malformed product entries are logged and skipped.
    """

    source = "opff"

    async def fetch(self, cursor: int, page_size: int) -> tuple[list[CandidateProduct], int]:
        page = max(int(cursor or 1), 1)
        products: list[CandidateProduct] = []
        raw_count = 0
        failures: list[SourceFetchError] = []
        incomplete = False

        for i, category in enumerate(CATEGORIES):
            if i and self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            url = f"{OPFF_BASE}/category/{category}.json"
            params = {"page": page, "page_size": page_size, "fields": FIELDS}
            try:
                payload = await get_json(self.client, url, params=params)
                if not isinstance(payload, dict):
                    raise SourceFetchError(url, f"unexpected payload {type(payload).__name__}")
            except SourceFetchError as e:
                logger.warning("OPFF category %s page %d failed: %s", category, page, e)
                failures.append(e)
                incomplete = incomplete or e.retryable
                continue

            items = payload.get("products") or []
            if not isinstance(items, list):
                logger.warning("OPFF category %s page %d: products is not a list", category, page)
                continue
            raw_count += len(items)
            for item in items:
                try:
                    parsed = self.parse_product(item)
                except Exception as e:
                    logger.warning("OPFF: skipping malformed product %r: %s", item, e)
                    continue
                if parsed is not None:
                    products.append(parsed)

        if failures and len(failures) == len(CATEGORIES):
            raise failures[-1]

        unique = self.dedupe_page(products)
        logger.info(
            "OPFF page %d: %d raw items, %d unique products", page, raw_count, len(unique)
        )
        if incomplete:
            next_cursor = page
        else:
            next_cursor = page + 1 if raw_count else page
        return unique, next_cursor

    def parse_product(self, item: dict) -> CandidateProduct | None:
        if not isinstance(item, dict):
            raise TypeError(f"product entry is {type(item).__name__}, not an object")
        code = sanitize_text(item.get("code"))
        if not code:
            return None

        nutriments = item.get("nutriments")
        if not isinstance(nutriments, dict):
            nutriments = {}
        macros = {
            name: resolve_alias(nutriments, OPFF_NUTRIENT_ALIASES[name]) or 0.0
            for name in MACRO_FIELDS
        }

        return CandidateProduct(
            external_id=code,
            brand=sanitize_text(item.get("brands")),
            name=sanitize_text(item.get("product_name")),
            additives=extract_additives(item.get("ingredients_text")),
            image_url=self._select_image(item),
            source_name=self.source,
            source_url=f"{OPFF_BASE}/product/{code}",
            extra={
                "carbohydrates": resolve_alias(
                    nutriments, OPFF_NUTRIENT_ALIASES["carbohydrates"]
                ),
                "energy_kcal": resolve_alias(nutriments, OPFF_NUTRIENT_ALIASES["energy_kcal"]),
                "categories": item.get("categories_tags") or [],
            },
            **macros,
        )

    @staticmethod
    def _select_image(item: dict) -> str | None:
        for key in ("image_url", "image_front_url", "image_small_url"):
            if item.get(key):
                return item[key]
        return None
