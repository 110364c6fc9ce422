"""
Pantry management.

Inventory arrives from two ingestion paths:
- Photos, analysed by the LLM vision call into candidate items with a 0-10
  confidence. Items at or above AUTO_ACCEPT_CONFIDENCE are added at once;
  the rest are routed to manual verification.
- Barcodes, resolved against a UPC product database. Lookups always produce
  a usable item and carry maximum confidence.

No de-duplication is performed against existing pantry items.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, List, Optional

import requests

from .config import Settings
from .data.models import AUTO_ACCEPT_CONFIDENCE, BARCODE_CONFIDENCE, PantryItem, new_item_id
from .data.storage import MealPlanStore
from .errors import TransportFailure, ValidationFailure
from .llm_provider import LLMProvider
from .normalizer import normalize_pantry_items

logger = logging.getLogger(__name__)

IMAGE_ANALYSIS_PROMPT = (
    "List all pantry items visible in this image as a JSON array. For each item include: "
    "name, brand, quantity, category, confidence (0-10), and expiry date if visible."
)
IMAGE_MAX_TOKENS = 1500

LEADING_NUMBER = re.compile(r"^\s*(\d+)(?:\.\d+)?\s*")


# =============================================================================
# Barcode lookup
# =============================================================================

class BarcodeLookup:
    """UPC product lookup over HTTP. Never raises for lookup failures."""

    def __init__(
        self,
        url: str = "https://api.upcitemdb.com/prod/trial/lookup",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def placeholder(code: str) -> PantryItem:
        return PantryItem(
            name="Scanned Product",
            brand="Unknown",
            quantity="1 item",
            category="General",
            confidence=BARCODE_CONFIDENCE,
            upc=code,
        )

    def _fetch(self, code: str) -> Optional[Dict]:
        response = self.session.get(
            self.url,
            params={"upc": code},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def lookup(self, code: str) -> PantryItem:
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, partial(self._fetch, code))
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[PANTRY] UPC lookup failed for {code}: {e}")
            return self.placeholder(code)

        items = (data or {}).get("items") or []
        if not items:
            logger.info(f"[PANTRY] UPC {code} not found, using placeholder")
            return self.placeholder(code)

        product = items[0]
        return PantryItem(
            name=product.get("title") or "Unknown Product",
            brand=product.get("brand") or "Generic",
            quantity="1 item",
            category=product.get("category") or "General",
            confidence=BARCODE_CONFIDENCE,
            upc=code,
        )


# =============================================================================
# Confidence routing
# =============================================================================

@dataclass
class IntakeResult:
    auto_accepted: List[PantryItem] = field(default_factory=list)
    needs_verification: List[PantryItem] = field(default_factory=list)
    images_processed: int = 0
    images_failed: int = 0

    @property
    def total_found(self) -> int:
        return len(self.auto_accepted) + len(self.needs_verification)


class PantryIntake:
    """Splits candidate items by the auto-accept confidence threshold."""

    def __init__(self, threshold: int = AUTO_ACCEPT_CONFIDENCE):
        self.threshold = threshold

    def route(self, candidates: List[Dict]) -> IntakeResult:
        result = IntakeResult()
        for candidate in candidates:
            # Unscored candidates go to verification
            item = PantryItem.from_dict({
                **candidate,
                "id": None,
                "status": "in_stock",
                "confidence": candidate.get("confidence", 0),
            })
            if item.confidence >= self.threshold:
                result.auto_accepted.append(item)
            else:
                result.needs_verification.append(item)
        logger.info(
            f"[PANTRY] Auto-accepting {len(result.auto_accepted)} items, "
            f"{len(result.needs_verification)} need verification"
        )
        return result


# =============================================================================
# Pantry manager
# =============================================================================

def adjust_quantity_text(quantity: str, change: int) -> str:
    """Shift the leading count of "3 lbs" by change, never below 0."""
    quantity = quantity or ""
    match = LEADING_NUMBER.match(quantity)
    current = int(match.group(1)) if match else 1
    unit = quantity[match.end():] if match else quantity
    return f"{max(0, current + change)} {unit.strip()}".strip()


class PantryManager:
    """Pantry CRUD plus image and barcode ingestion."""

    def __init__(
        self,
        store: MealPlanStore,
        provider: LLMProvider,
        barcode_lookup: Optional[BarcodeLookup] = None,
        settings: Optional[Settings] = None,
        intake: Optional[PantryIntake] = None,
    ):
        self.store = store
        self.provider = provider
        self.settings = settings or Settings()
        self.barcode_lookup = barcode_lookup or BarcodeLookup(
            self.settings.upc_lookup_url, self.settings.barcode_timeout
        )
        self.intake = intake or PantryIntake()

    async def list_items(self) -> List[PantryItem]:
        return await self.store.get_pantry()

    async def _append(self, items: List[PantryItem]) -> None:
        pantry = await self.store.get_pantry()
        pantry.extend(items)
        await self.store.save_pantry(pantry)

    async def analyze_images(self, images: List[str]) -> IntakeResult:
        """
        Detect items in base64 JPEG images and add the confident ones.

        A failing image is skipped; if every image fails the last error
        propagates.

        Raises:
            TransportFailure / TimeoutFailure: every image failed
        """
        candidates: List[Dict] = []
        processed = failed = 0
        last_error: Optional[TransportFailure] = None

        for idx, image in enumerate(images, start=1):
            try:
                text = await self.provider.complete(
                    IMAGE_ANALYSIS_PROMPT,
                    image=image,
                    timeout=self.settings.image_timeout,
                    max_tokens=IMAGE_MAX_TOKENS,
                )
            except TransportFailure as e:
                logger.error(f"[PANTRY] Failed to process image {idx}: {e}")
                failed += 1
                last_error = e
                continue
            found = normalize_pantry_items(text)
            logger.info(f"[PANTRY] Found {len(found)} items in image {idx}")
            candidates.extend(found)
            processed += 1

        if images and failed == len(images) and last_error is not None:
            raise last_error

        result = self.intake.route(candidates)
        result.images_processed = processed
        result.images_failed = failed
        if result.auto_accepted:
            await self._append(result.auto_accepted)
        return result

    async def verify_item(self, item: PantryItem, accepted: bool) -> Optional[PantryItem]:
        """Add a low-confidence item once the user confirms it."""
        if not accepted:
            logger.debug(f"[PANTRY] Rejected '{item.name}'")
            return None
        confirmed = PantryItem.from_dict({**item.to_dict(), "id": new_item_id(), "status": "in_stock"})
        await self._append([confirmed])
        return confirmed

    async def add_barcode(self, code: str) -> PantryItem:
        item = await self.barcode_lookup.lookup(code)
        await self._append([item])
        logger.info(f"[PANTRY] {item.name} has been added to your pantry")
        return item

    async def adjust_quantity(self, item_id: str, change: int) -> PantryItem:
        """
        Raises:
            ValidationFailure: no item with item_id
        """
        pantry = await self.store.get_pantry()
        for item in pantry:
            if item.id == item_id:
                item.quantity = adjust_quantity_text(item.quantity, change)
                await self.store.save_pantry(pantry)
                return item
        raise ValidationFailure(f"Pantry item {item_id} not found", field="item_id")

    async def remove_item(self, item_id: str) -> bool:
        pantry = await self.store.get_pantry()
        remaining = [item for item in pantry if item.id != item_id]
        if len(remaining) == len(pantry):
            return False
        await self.store.save_pantry(remaining)
        return True
