"""Short-lived pairing codes that point agents at a controller."""

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from config import (
    RELAY_PAIRING_CODE_TTL,
    RELAY_PAIRING_CODE_MIN,
    RELAY_PAIRING_CODE_MAX,
)
from relay.errors import DuplicateCodeCollision

logger = logging.getLogger(__name__)


@dataclass
class PairingCode:
    """A live pairing code."""
    code: str
    controller_id: str
    created_at: float = field(default_factory=time.time)

    def is_expired(self, ttl: float, now: float) -> bool:
        return self.created_at < now - ttl


class PairingCodeStore:
    """Thread-safe code -> controller mapping with TTL expiration.

    Codes are reusable until they expire or their controller is revoked,
    so any number of agents can join with the same code.
    """

    def __init__(
        self,
        ttl: float = RELAY_PAIRING_CODE_TTL,
        clock: Callable[[], float] = time.time,
        lock: Optional[threading.RLock] = None,
    ):
        self.ttl = ttl
        self._clock = clock
        self._codes: Dict[str, PairingCode] = {}
        self._by_controller: Dict[str, str] = {}
        # Shared with the session registry so both maps change together
        self._lock = lock or threading.RLock()

        # Statistics
        self.collisions = 0

    def _generate(self) -> str:
        span = RELAY_PAIRING_CODE_MAX - RELAY_PAIRING_CODE_MIN + 1
        code = str(RELAY_PAIRING_CODE_MIN + secrets.randbelow(span))
        if code in self._codes:
            raise DuplicateCodeCollision(code)
        return code

    def issue(self, controller_id: str, now: Optional[float] = None) -> str:
        """Allocate a fresh code for a controller, replacing any previous one."""
        if now is None:
            now = self._clock()

        with self._lock:
            self.revoke(controller_id)

            while True:
                try:
                    code = self._generate()
                    break
                except DuplicateCodeCollision:
                    self.collisions += 1

            self._codes[code] = PairingCode(code=code, controller_id=controller_id, created_at=now)
            self._by_controller[controller_id] = code
            return code

    def resolve(self, code: str, now: Optional[float] = None) -> Optional[str]:
        """Return the controller a code points at, or None if unknown/expired."""
        if now is None:
            now = self._clock()

        with self._lock:
            entry = self._codes.get(code)
            if entry is None:
                return None

            if entry.is_expired(self.ttl, now):
                self._remove(entry)
                return None

            return entry.controller_id

    def code_for(self, controller_id: str) -> Optional[str]:
        """Return the live code owned by a controller, if any."""
        with self._lock:
            return self._by_controller.get(controller_id)

    def revoke(self, controller_id: str) -> List[str]:
        """Remove every code owned by a controller."""
        with self._lock:
            revoked = [
                code for code, entry in self._codes.items()
                if entry.controller_id == controller_id
            ]
            for code in revoked:
                del self._codes[code]
            self._by_controller.pop(controller_id, None)
        return revoked

    def sweep_expired(self, now: Optional[float] = None) -> List[PairingCode]:
        """Remove codes created before ``now - ttl`` and return them."""
        if now is None:
            now = self._clock()

        with self._lock:
            expired = [e for e in self._codes.values() if e.is_expired(self.ttl, now)]
            for entry in expired:
                self._remove(entry)

        if expired:
            logger.info(f"Swept {len(expired)} expired pairing code(s)")
        return expired

    def _remove(self, entry: PairingCode) -> None:
        self._codes.pop(entry.code, None)
        if self._by_controller.get(entry.controller_id) == entry.code:
            del self._by_controller[entry.controller_id]

    @property
    def size(self) -> int:
        """Number of codes currently stored."""
        with self._lock:
            return len(self._codes)

    def get_stats(self) -> Dict[str, float]:
        return {
            "size": self.size,
            "ttl": self.ttl,
            "collisions": self.collisions,
        }
