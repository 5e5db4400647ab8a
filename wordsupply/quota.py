import logging
import time
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class QuotaMonitor:
    """Tracks the generator's remaining request quota and a local per-minute budget."""

    def __init__(self, requests_per_minute: int = 30,
                 warning_ratio: float = 0.10, critical_ratio: float = 0.05):
        self.quota_info = {
            "remaining": None,
            "limit": None,
            "reset_time": None,
            "last_check": None,
        }
        self.warning_ratio = warning_ratio
        self.critical_ratio = critical_ratio
        self.requests_per_minute = requests_per_minute
        self._window_start = time.monotonic()
        self._window_count = 0

    def update_quota(self, headers: Mapping[str, str]) -> None:
        """
        Update quota information from generator response headers.

        Args:
            headers: Response headers (x-ratelimit-remaining / -limit / -reset)
        """
        try:
            remaining = headers.get('x-ratelimit-remaining')
            limit = headers.get('x-ratelimit-limit')
            reset = headers.get('x-ratelimit-reset')
            if remaining is not None:
                self.quota_info["remaining"] = int(remaining)
            if limit is not None:
                self.quota_info["limit"] = int(limit)
            if reset is not None:
                # OpenRouter reports the reset as epoch milliseconds
                reset_value = int(reset)
                if reset_value > 10 ** 11:
                    reset_value //= 1000
                self.quota_info["reset_time"] = datetime.fromtimestamp(reset_value, timezone.utc)
            self.quota_info["last_check"] = datetime.now(timezone.utc)
            logger.debug(
                f"Quota updated - Remaining: {self.quota_info['remaining']}/"
                f"{self.quota_info['limit']}, Reset: {self.quota_info['reset_time']}"
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to update quota information: {e}")

    def check_rate_limits(self) -> Tuple[bool, Optional[str]]:
        """
        Consume one request from the local per-minute budget.

        Returns:
            (is_allowed, error_message)
        """
        now = time.monotonic()
        if now - self._window_start >= 60:
            self._window_start = now
            self._window_count = 0
        if self._window_count >= self.requests_per_minute:
            return False, "Rate limit exceeded. Please wait a moment."
        self._window_count += 1
        return True, None

    def get_quota_warning(self) -> Optional[Dict[str, str]]:
        """Warning dict with level and message, or None if quota is healthy."""
        remaining = self.quota_info["remaining"]
        limit = self.quota_info["limit"]
        if remaining is None or not limit:
            return None
        ratio = remaining / limit
        reset_time = self.quota_info["reset_time"]
        if reset_time:
            minutes = int((reset_time - datetime.now(timezone.utc)).total_seconds() / 60)
            resets_in = f"{max(minutes, 0)} minutes"
        else:
            resets_in = "an unknown time"
        if ratio <= self.critical_ratio:
            return {
                "level": "error",
                "message": (
                    f"Critical: only {remaining} generator calls remaining! "
                    f"Quota resets in {resets_in}."
                ),
            }
        if ratio <= self.warning_ratio:
            return {
                "level": "warning",
                "message": f"Warning: {remaining} generator calls remaining. Quota resets in {resets_in}.",
            }
        return None

    def get_quota_status(self) -> Dict:
        now = datetime.now(timezone.utc)
        last_check = self.quota_info["last_check"]
        return {
            "remaining": self.quota_info["remaining"],
            "limit": self.quota_info["limit"],
            "reset_time": self.quota_info["reset_time"],
            "last_check": last_check,
            "time_since_check": (now - last_check).total_seconds() if last_check else None,
            "warning": self.get_quota_warning(),
        }
