# ziproute/api/services/usage_service.py
"""Plan gating and daily usage metering."""

import json
import logging
import os
import threading
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from ziproute.api.config import get_usage_config
from ziproute.api.errors import FeatureNotAvailable, UsageLimitExceeded
from ziproute.api.models import Identity

logger = logging.getLogger(__name__)

PAID_PLANS = ("pro", "team")

FEATURE_PLANS = {
    "address_lock": ("pro", "team"),
    "stops_over_9": ("pro", "team"),
    "export_gmaps": ("free", "pro", "team"),
    "csv_import": ("free", "pro", "team"),
    "save_route": ("pro", "team"),
}

FREE_MAX_STOPS = 9
# Plan allowance only; a single optimize run is further capped by
# optimization.MAX_COORDINATES (11 destinations plus the start).
PRO_MAX_STOPS = 25
USAGE_LOG_LIMIT = 200


def is_pro(plan: str) -> bool:
    return plan in PAID_PLANS


def max_stops(plan: str) -> int:
    """Maximum number of destinations per route for a plan."""
    return PRO_MAX_STOPS if is_pro(plan) else FREE_MAX_STOPS


def can_use(feature: str, plan: str) -> bool:
    if feature not in FEATURE_PLANS:
        raise ValueError(f"Unknown feature: {feature}")
    return plan in FEATURE_PLANS[feature]


def require_feature(feature: str, plan: str) -> None:
    if not can_use(feature, plan):
        raise FeatureNotAvailable(f"Upgrade to Pro to use {feature.replace('_', ' ')}.")


# --------------------------------------------------------------------------- #
# Key-value stores
# --------------------------------------------------------------------------- #
class InMemoryStore:
    """Process-local key-value store."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self.lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self.lock:
            self._data[key] = value


class JsonFileStore(InMemoryStore):
    """Key-value store persisted to a single JSON file on every write."""

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                self._data = json.load(fh)
            logger.info(f"Loaded {len(self._data)} usage keys from {path}")

    def set(self, key: str, value: Any) -> None:
        with self.lock:
            self._data[key] = value
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh)
            os.replace(tmp_path, self.path)


def create_store(path: Optional[str] = None):
    path = path if path is not None else get_usage_config()["store_path"]
    return JsonFileStore(path) if path else InMemoryStore()


# --------------------------------------------------------------------------- #
# Usage meter
# --------------------------------------------------------------------------- #
class UsageMeter:
    """Counts optimize runs per identity and day, with a cooldown once over."""

    def __init__(self, store, config: Optional[Dict[str, Any]] = None, clock=time.time):
        self.store = store
        self.config = config or get_usage_config()
        self.clock = clock
        self.lock = threading.Lock()

    @staticmethod
    def namespace(identity: Identity) -> str:
        who = f"u:{identity.user_id or 'unknown'}" if identity.is_logged_in else "guest"
        return f"{who}:{identity.plan}"

    def _today(self) -> str:
        return date.fromtimestamp(self.clock()).isoformat()

    def _count_key(self, uid: str) -> str:
        return f"usage:{uid}:{self._today()}"

    def cooldown_until(self, identity: Identity) -> Optional[float]:
        until = float(self.store.get(f"cooldown_until:{self.namespace(identity)}", 0) or 0)
        return until if until > self.clock() else None

    def count(self, identity: Identity) -> int:
        return int(self.store.get(self._count_key(self.namespace(identity)), 0) or 0)

    def remaining(self, identity: Identity) -> Optional[int]:
        """Uses left today, or None when unlimited."""
        if is_pro(identity.plan):
            return None
        if self.cooldown_until(identity):
            return 0
        return max(0, self.config["daily_free_limit"] - self.count(identity))

    def record_optimize_use(self, identity: Identity) -> Dict[str, Any]:
        """Count one optimize run and report whether it is allowed.

        Returns:
            Dictionary with blocked, reason, count, cooldown_until and nudge
        """
        if is_pro(identity.plan):
            return {"blocked": False, "reason": None, "count": 0, "cooldown_until": None, "nudge": False}

        uid = self.namespace(identity)
        with self.lock:
            cooldown = self.cooldown_until(identity)
            if cooldown:
                return {"blocked": True, "reason": "cooldown", "count": self.count(identity),
                        "cooldown_until": cooldown, "nudge": False}

            count = self.count(identity) + 1
            self.store.set(self._count_key(uid), count)

            log = list(self.store.get(f"usage_log:{uid}", []) or [])
            log.append(datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat())
            self.store.set(f"usage_log:{uid}", log[-USAGE_LOG_LIMIT:])

            if count > self.config["daily_free_limit"]:
                until = self.clock() + self.config["cooldown_minutes"] * 60
                self.store.set(f"cooldown_until:{uid}", until)
                reason = "free_limit" if identity.is_logged_in else "guest_limit"
                logger.info(f"Usage limit reached for {uid} ({count} runs today)")
                return {"blocked": True, "reason": reason, "count": count,
                        "cooldown_until": until, "nudge": False}

        nudge = not identity.is_logged_in and count >= self.config["guest_nudge_after"]
        return {"blocked": False, "reason": None, "count": count, "cooldown_until": None, "nudge": nudge}

    def check(self, identity: Identity) -> Dict[str, Any]:
        """Record a run, raising UsageLimitExceeded when it is not allowed."""
        decision = self.record_optimize_use(identity)
        if decision["blocked"]:
            if decision["reason"] == "cooldown":
                message = "You've hit today's limit. Please wait for the cooldown to end."
            elif decision["reason"] == "guest_limit":
                message = "Daily free limit reached. Sign in or upgrade to keep planning."
            else:
                message = "Daily free limit reached. Upgrade to Pro for unlimited routes."
            raise UsageLimitExceeded(message, reason=decision["reason"],
                                     cooldown_until=decision["cooldown_until"])
        return decision


__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "UsageMeter",
    "can_use",
    "create_store",
    "is_pro",
    "max_stops",
    "require_feature",
]
