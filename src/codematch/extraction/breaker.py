"""Circuit breaker guarding the extraction pipeline as a whole."""

import logging
import threading
import time

logger = logging.getLogger(__name__)

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class AgentCircuitBreaker:
    """
    Circuit breaker pattern for handling repeated extraction failures.

    After a threshold of consecutive failures the circuit opens and
    extractions fail fast until the recovery timeout passes. The next call
    then runs as a trial call (HALF_OPEN): success closes the circuit, another
    failure reopens it.
    """

    def __init__(
        self,
        failure_threshold=5,
        recovery_timeout=60,
        max_tool_calls=10,
        max_execution_time=30.0,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.max_tool_calls = max_tool_calls
        self.max_execution_time = max_execution_time
        self.failure_count = 0
        self.last_failure_time = None
        self._state = CLOSED  # CLOSED, OPEN, HALF_OPEN
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self.failure_count

    def allow_execution(self) -> bool:
        """Whether a new extraction may run right now."""
        with self._lock:
            if self._state != OPEN:
                return True
            if time.time() - self.last_failure_time > self.recovery_timeout:
                self._state = HALF_OPEN
                logger.info("Circuit breaker entering HALF_OPEN state")
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self.failure_count = 0
            if self._state == HALF_OPEN:
                self._state = CLOSED
                logger.info("Circuit breaker reset to CLOSED")

    def record_failure(self) -> None:
        """Record a failure and potentially open the circuit."""
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.failure_count >= self.failure_threshold and self._state != OPEN:
                self._state = OPEN
                logger.error(f"Circuit breaker OPENED after {self.failure_count} failures")

    def reset(self) -> None:
        with self._lock:
            self.failure_count = 0
            self._state = CLOSED
        logger.info("Circuit breaker reset to CLOSED")

    def should_continue_execution(self, tool_calls: int, started_at: float) -> bool:
        """
        Budget check for a multi-step execution.

        Args:
            tool_calls: Number of calls made so far
            started_at: ``time.time()`` when the execution began

        Returns:
            False once the call budget or the time budget is spent
        """
        if tool_calls >= self.max_tool_calls:
            logger.warning(f"Execution stopped: too many tool calls ({tool_calls})")
            return False

        elapsed = time.time() - started_at
        if elapsed > self.max_execution_time:
            logger.warning(f"Execution stopped: timeout after {elapsed:.1f}s")
            return False

        return True
