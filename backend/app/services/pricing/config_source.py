"""
Pricing configuration sources
Rates live in the Firestore settings/pricing document and are re-read on a TTL,
so admin rate changes apply without a restart
"""
import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from google.api_core.exceptions import GoogleAPIError

from app.core.errors import StorageError
from app.core.firebase import Collections, PRICING_SETTINGS_DOC, get_db
from app.services.pricing.engine import RETURN_POLICY_HALF_DISTANCE, RETURN_POLICY_NONE, PricingConfig

logger = logging.getLogger(__name__)

# Document field -> PricingConfig attribute
CONFIG_FIELDS = {
    "RATE_PER_KM": ("rate_per_km", int),
    "PER_DIEM_RATE": ("per_diem_rate", int),
    "PLATFORM_COMMISSION_DEFAULT": ("platform_commission_default", float),
    "WAITING_FEE_PER_HOUR": ("waiting_fee_per_hour", int),
    "FREE_WAITING_HOURS": ("free_waiting_hours", float),
    "AFTER_HOURS_SURCHARGE": ("after_hours_surcharge", int),
    "DEFAULT_RETURN_ALLOWANCE": ("default_return_allowance", int),
    "CUSTOM_ROUTE_RETURN_POLICY": ("custom_route_return_policy", str),
}


def normalize_corridor_key(key: str) -> str:
    """Accept both 'dar-tunduma' and the short endpoint name 'Tunduma'"""
    k = key.strip().lower()
    return k if k.startswith("dar-") else f"dar-{k}"


def config_from_document(doc: Optional[Dict[str, Any]], defaults: PricingConfig) -> PricingConfig:
    """Merge a pricing document over defaults. Missing or empty fields keep the default."""
    if not doc:
        return defaults

    changes: Dict[str, Any] = {}
    for doc_key, (attr, cast) in CONFIG_FIELDS.items():
        value = doc.get(doc_key)
        if value in (None, ""):
            continue
        changes[attr] = cast(value)

    if changes.get("custom_route_return_policy") not in (None, RETURN_POLICY_HALF_DISTANCE, RETURN_POLICY_NONE):
        logger.warning(f"Ignoring unknown custom route policy: {changes['custom_route_return_policy']}")
        changes.pop("custom_route_return_policy")

    allowances = dict(defaults.corridor_allowances)
    for key, amount in (doc.get("CORRIDOR_ALLOWANCES") or {}).items():
        if amount is not None:
            allowances[normalize_corridor_key(key)] = int(amount)
    changes["corridor_allowances"] = allowances

    return replace(defaults, **changes)


def config_to_document(config: PricingConfig) -> Dict[str, Any]:
    doc = {doc_key: getattr(config, attr) for doc_key, (attr, _cast) in CONFIG_FIELDS.items()}
    doc["CORRIDOR_ALLOWANCES"] = dict(config.corridor_allowances)
    return doc


class PricingConfigSource:
    """Supplies the current PricingConfig"""

    async def load(self) -> PricingConfig:
        raise NotImplementedError


class StaticPricingConfigSource(PricingConfigSource):
    """Fixed configuration (tests, CLI quotes)"""

    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config or PricingConfig()

    async def load(self) -> PricingConfig:
        return self.config


class FirestorePricingConfigSource(PricingConfigSource):
    """
    Firestore-backed pricing config with TTL caching.

    A failed refresh keeps serving the last known config (or the defaults
    before the first successful read) so quoting never stops on a config read.
    """

    def __init__(
        self,
        defaults: PricingConfig,
        *,
        db=None,
        ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.defaults = defaults
        self._db = db
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached: Optional[PricingConfig] = None
        self._cached_doc: Dict[str, Any] = {}
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def _doc_ref(self):
        return self.db.collection(Collections.SETTINGS).document(PRICING_SETTINGS_DOC)

    def _is_fresh(self) -> bool:
        return (
            self._cached is not None
            and self._loaded_at is not None
            and self._clock() - self._loaded_at < self.ttl_seconds
        )

    async def load(self) -> PricingConfig:
        if self._is_fresh():
            return self._cached

        async with self._lock:
            if self._is_fresh():
                return self._cached

            def _work():
                snap = self._doc_ref().get()
                return snap.to_dict() if snap.exists else None

            try:
                doc = await asyncio.to_thread(_work)
            except GoogleAPIError as e:
                logger.warning(f"⚠️ Could not load pricing config, using {'cached' if self._cached else 'default'} rates: {e}")
                return self._cached or self.defaults

            self._cached = config_from_document(doc, self.defaults)
            self._cached_doc = doc or {}
            self._loaded_at = self._clock()
            logger.info(f"✅ Pricing config loaded: rate_per_km={self._cached.rate_per_km}, "
                        f"last_updated={self._cached_doc.get('LAST_UPDATED')}")
            return self._cached

    async def get_document(self) -> Dict[str, Any]:
        """Current config as a document, including audit fields"""
        config = await self.load()
        doc = config_to_document(config)
        doc["LAST_UPDATED"] = self._cached_doc.get("LAST_UPDATED")
        doc["UPDATED_BY"] = self._cached_doc.get("UPDATED_BY")
        return doc

    async def save(self, updates: Dict[str, Any], updated_by: str = "admin") -> PricingConfig:
        """
        Merge updates into the stored config and invalidate the cache

        Args:
            updates: Document fields (RATE_PER_KM, CORRIDOR_ALLOWANCES, ...)
            updated_by: Audit label

        Returns:
            The new effective PricingConfig
        """
        current = await self.load()
        merged_doc = config_to_document(current)
        for key, value in updates.items():
            if value is None:
                continue
            if key == "CORRIDOR_ALLOWANCES":
                merged_doc["CORRIDOR_ALLOWANCES"].update(
                    {normalize_corridor_key(k): int(v) for k, v in value.items()}
                )
            elif key in CONFIG_FIELDS:
                merged_doc[key] = value

        new_config = config_from_document(merged_doc, self.defaults)
        stored = config_to_document(new_config)
        stored["LAST_UPDATED"] = datetime.now(timezone.utc).isoformat()
        stored["UPDATED_BY"] = updated_by

        def _work():
            self._doc_ref().set(stored)

        try:
            await asyncio.to_thread(_work)
        except GoogleAPIError as e:
            raise StorageError(f"Failed to save pricing config: {e}") from e

        async with self._lock:
            self._cached = new_config
            self._cached_doc = stored
            self._loaded_at = self._clock()

        logger.info(f"✅ Pricing updated by {updated_by}: rate_per_km {current.rate_per_km} -> {new_config.rate_per_km}")
        return new_config
