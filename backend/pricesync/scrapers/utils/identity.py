"""Rotating browser identity profiles for anti-fingerprinting.

An identity bundles a user-agent string with a randomized viewport. It
reduces the chance of fingerprint-based blocking; it is not a correctness
input and scraped values never depend on it.
"""

import random
from dataclasses import dataclass
from typing import List, Optional


# Current desktop browsers on Windows and macOS
USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) Gecko/20100101 Firefox/132.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
]

# Base viewport; each identity adds up to VIEWPORT_JITTER pixels per axis
BASE_VIEWPORT = (1366, 768)
VIEWPORT_JITTER = 200


@dataclass(frozen=True)
class Identity:
    """User-agent and viewport combination used for one page fetch."""

    user_agent: str
    viewport_width: int
    viewport_height: int
    locale: str = "de-DE"

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def accept_language(self) -> str:
        language = self.locale.split("-")[0]
        return f"{self.locale},{language};q=0.9,en;q=0.8"


class IdentityRotator:
    """Hands out a different identity on every call.

    User agents are taken round-robin from a random starting point so that
    consecutive attempts for the same product never reuse the same agent
    (as long as the pool has more than one entry).
    """

    def __init__(
        self,
        user_agents: Optional[List[str]] = None,
        locale: str = "de-DE",
        rng: Optional[random.Random] = None,
    ):
        self._user_agents = list(user_agents or USER_AGENTS)
        if not self._user_agents:
            raise ValueError("user_agents must not be empty")
        self._locale = locale
        self._rng = rng or random.Random()
        self._index = self._rng.randrange(len(self._user_agents))

    def next(self) -> Identity:
        """Return the next identity in the rotation."""
        user_agent = self._user_agents[self._index % len(self._user_agents)]
        self._index = (self._index + 1) % len(self._user_agents)
        width, height = BASE_VIEWPORT
        return Identity(
            user_agent=user_agent,
            viewport_width=width + self._rng.randint(0, VIEWPORT_JITTER),
            viewport_height=height + self._rng.randint(0, VIEWPORT_JITTER),
            locale=self._locale,
        )
