"""
Unit tests for pantry.py - image intake, barcode lookup and quantity edits.
"""

import json
from unittest.mock import Mock

import pytest
import requests

from weekly_dish.data.models import PantryItem
from weekly_dish.errors import TransportFailure, ValidationFailure
from weekly_dish.pantry import (
    IMAGE_MAX_TOKENS,
    BarcodeLookup,
    PantryIntake,
    PantryManager,
    adjust_quantity_text,
)

from fakes import ScriptedLLMProvider


def _session(payload=None, error=None):
    session = Mock(spec=requests.Session)
    if error is not None:
        session.get.side_effect = error
    else:
        response = Mock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        session.get.return_value = response
    return session


# =============================================================================
# Confidence routing
# =============================================================================

class TestPantryIntake:
    """Tests for auto-accept vs verification routing."""

    def test_threshold_is_inclusive(self):
        result = PantryIntake().route([
            {"name": "Milk", "confidence": 7},
            {"name": "Maybe Cheese", "confidence": 6},
            {"name": "Bread", "confidence": 10},
        ])
        assert [i.name for i in result.auto_accepted] == ["Milk", "Bread"]
        assert [i.name for i in result.needs_verification] == ["Maybe Cheese"]
        assert result.total_found == 3

    def test_missing_confidence_needs_verification(self):
        result = PantryIntake().route([{"name": "Jar"}])
        assert result.needs_verification[0].confidence == 0

    def test_routed_items_get_fresh_ids(self):
        result = PantryIntake().route([{"name": "A", "id": "x", "confidence": 9}])
        assert result.auto_accepted[0].id != "x"


# =============================================================================
# Barcode lookup
# =============================================================================

class TestBarcodeLookup:
    """Tests for UPC lookups over HTTP."""

    @pytest.mark.asyncio
    async def test_hit(self):
        session = _session({"items": [{"title": "Peanut Butter", "brand": "Jif", "category": "Spreads"}]})
        item = await BarcodeLookup(session=session).lookup("0123")
        assert item.name == "Peanut Butter"
        assert item.brand == "Jif"
        assert item.confidence == 10
        assert item.upc == "0123"
        assert session.get.call_args.kwargs["params"] == {"upc": "0123"}

    @pytest.mark.asyncio
    async def test_miss_returns_placeholder(self):
        item = await BarcodeLookup(session=_session({"items": []})).lookup("999")
        assert item.name == "Scanned Product"
        assert item.brand == "Unknown"
        assert item.upc == "999"

    @pytest.mark.asyncio
    async def test_network_error_returns_placeholder(self):
        session = _session(error=requests.ConnectionError("offline"))
        item = await BarcodeLookup(session=session).lookup("555")
        assert item.name == "Scanned Product"
        assert item.confidence == 10


# =============================================================================
# Pantry manager
# =============================================================================

class TestPantryManager:
    """Tests for pantry CRUD and ingestion."""

    @pytest.mark.asyncio
    async def test_analyze_images(self, store, settings):
        llm = ScriptedLLMProvider({"image": [
            json.dumps([{"name": "Milk", "confidence": 9}, {"name": "Jar", "confidence": 3}]),
            TransportFailure("bad image"),
        ]})
        manager = PantryManager(store, llm, BarcodeLookup(session=_session()), settings)

        result = await manager.analyze_images(["img1", "img2"])

        assert result.images_processed == 1
        assert result.images_failed == 1
        assert [i.name for i in await store.get_pantry()] == ["Milk"]
        assert [i.name for i in result.needs_verification] == ["Jar"]
        assert llm.calls[0]["max_tokens"] == IMAGE_MAX_TOKENS
        assert llm.calls[0]["timeout"] == settings.image_timeout

    @pytest.mark.asyncio
    async def test_all_images_fail(self, store, settings):
        llm = ScriptedLLMProvider({"image": TransportFailure("down", status_code=500)})
        manager = PantryManager(store, llm, BarcodeLookup(session=_session()), settings)
        with pytest.raises(TransportFailure):
            await manager.analyze_images(["img1"])

    @pytest.mark.asyncio
    async def test_verify_item(self, store, settings):
        manager = PantryManager(store, ScriptedLLMProvider(), BarcodeLookup(session=_session()), settings)
        candidate = PantryItem(name="Jar", confidence=3)

        assert await manager.verify_item(candidate, accepted=False) is None
        confirmed = await manager.verify_item(candidate, accepted=True)

        assert [i.id for i in await store.get_pantry()] == [confirmed.id]

    @pytest.mark.asyncio
    async def test_add_barcode(self, store, settings):
        session = _session({"items": [{"title": "Oats"}]})
        manager = PantryManager(store, ScriptedLLMProvider(), BarcodeLookup(session=session), settings)
        item = await manager.add_barcode("111")
        assert item.brand == "Generic"
        assert (await manager.list_items())[0].name == "Oats"

    @pytest.mark.asyncio
    async def test_adjust_and_remove(self, store, settings):
        item = PantryItem(name="Apples", quantity="3 lbs")
        await store.save_pantry([item])
        manager = PantryManager(store, ScriptedLLMProvider(), BarcodeLookup(session=_session()), settings)

        updated = await manager.adjust_quantity(item.id, -1)
        assert updated.quantity == "2 lbs"
        assert (await store.get_pantry())[0].quantity == "2 lbs"

        with pytest.raises(ValidationFailure):
            await manager.adjust_quantity("missing", 1)

        assert await manager.remove_item(item.id) is True
        assert await manager.remove_item(item.id) is False
        assert await store.get_pantry() == []


class TestAdjustQuantityText:
    """Tests for leading-count edits."""

    @pytest.mark.parametrize("quantity,change,expected", [
        ("3 lbs", 1, "4 lbs"),
        ("1 item", -1, "0 item"),
        ("0 item", -1, "0 item"),
        ("a bunch", 1, "2 a bunch"),
        ("", 2, "3"),
        ("2.5 cups", 1, "3 cups"),
    ])
    def test_adjust(self, quantity, change, expected):
        assert adjust_quantity_text(quantity, change) == expected
