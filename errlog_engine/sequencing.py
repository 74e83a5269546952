"""
Caller-side request sequencing.

A dashboard may issue a new query before the previous one has answered.
The caller tags each request with an id from a RequestSequencer and
discards any response whose id is older than the newest one it has
accepted. The engine itself never consults this.
"""

import re
import secrets
import threading
from typing import Optional

REQUEST_ID_PATTERN = re.compile(r'^req_(?P<seq>\d+)_[0-9a-z]+$')


def request_sequence(request_id: str) -> Optional[int]:
    """Extract the sequence number from a request id, or None."""
    match = REQUEST_ID_PATTERN.match(request_id or '')
    if not match:
        return None
    return int(match.group('seq'))


class RequestSequencer:
    """Issues monotonically increasing request ids and filters stale responses."""

    def __init__(self):
        self._lock = threading.Lock()
        self._issued = 0
        self._latest_accepted = 0

    def issue(self) -> str:
        """Return a new request id, newer than every id issued before."""
        with self._lock:
            self._issued += 1
            return f"req_{self._issued}_{secrets.token_hex(4)}"

    def is_latest(self, request_id: str) -> bool:
        """True if the id is the most recently issued one."""
        sequence = request_sequence(request_id)
        with self._lock:
            return sequence is not None and sequence == self._issued

    def accept(self, request_id: str) -> bool:
        """Decide whether a response for request_id should be applied.

        A response is accepted unless a newer response was already
        accepted. Ids that were not issued by a sequencer are rejected.
        """
        sequence = request_sequence(request_id)
        if sequence is None:
            return False
        with self._lock:
            if sequence < self._latest_accepted:
                return False
            self._latest_accepted = sequence
            return True
