"""
Failure bookkeeping for providers, the cache and background phases.

Nothing in the aggregation path is allowed to fail a request, so this module
only classifies, counts and logs. ``CircuitBreaker`` decides when a failing
source or backend is tried again.
"""

import asyncio
import json
import logging
import traceback
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

import aiohttp


class FailureCategory(Enum):
    """What kind of provider or backend failure occurred"""
    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    PARSE = "parse"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ServiceType(Enum):
    IMPORTANT = "important"
    OPTIONAL = "optional"


RECOVERY_HINTS = {
    FailureCategory.NETWORK: "Check connectivity and the provider status page.",
    FailureCategory.TIMEOUT: "Provider is slow. Raise SOURCE_TIMEOUT_MS or move the source to phase 2.",
    FailureCategory.AUTH: "Credentials rejected. Check the provider key in the environment.",
    FailureCategory.RATE_LIMIT: "Quota exhausted. Lower the refresh rate or upgrade the plan.",
    FailureCategory.PARSE: "Provider returned an unexpected payload. Check for an API change.",
}

# Sources whose failures matter beyond a single section
IMPORTANT_SERVICES = {'cache': ServiceType.IMPORTANT}

PATTERN_THRESHOLD = 3


@dataclass
class ErrorContext:
    """One recorded failure"""
    service: str
    operation: str
    error_type: str
    error_message: str
    category: str
    severity: str
    timestamp: datetime
    stack_trace: str = ""
    recovery_action: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ErrorHandler:
    """
    Records failures without ever interrupting a request.

    ``service`` is a source id (``rss:BBC World``), ``cache``, ``enrichment``
    or a background phase (``phase2:world``).
    """

    def __init__(self, history_size: int = 200) -> None:
        self.service_criticality: Dict[str, ServiceType] = dict(IMPORTANT_SERVICES)
        self.error_history: Deque[ErrorContext] = deque(maxlen=history_size)
        self.error_counts: Counter = Counter()
        self.service_counts: Counter = Counter()
        self.logger = logging.getLogger(__name__)

    def handle_error(
        self,
        error: BaseException,
        service: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorContext:
        category = self.classify_failure(error)
        severity = self.classify_severity(error, service, category)

        ctx = ErrorContext(
            service=service,
            operation=operation,
            error_type=type(error).__name__,
            error_message=str(error) or type(error).__name__,
            category=category.value,
            severity=severity.value,
            timestamp=datetime.now(timezone.utc),
            stack_trace=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            recovery_action=self.get_recovery_suggestion(category),
            metadata=dict(context or {}),
        )
        self.error_history.append(ctx)
        self.error_counts[ctx.category] += 1
        self.service_counts[service] += 1

        self.logger.log(
            logging.ERROR if severity == ErrorSeverity.HIGH else logging.WARNING,
            json.dumps({
                'event': 'source_error',
                'service': service,
                'operation': operation,
                'category': ctx.category,
                'severity': ctx.severity,
                'error': f"{ctx.error_type}: {ctx.error_message}",
            }, ensure_ascii=False),
            extra={'source': service},
        )
        return ctx

    def classify_failure(self, error: BaseException) -> FailureCategory:
        message = str(error).lower()
        status = getattr(error, 'status', None)

        if isinstance(error, (asyncio.TimeoutError, TimeoutError)) or 'timeout' in message or 'timed out' in message:
            return FailureCategory.TIMEOUT
        if status in (401, 403) or 'unauthorized' in message or 'api key' in message:
            return FailureCategory.AUTH
        if status == 429 or 'rate limit' in message or 'too many requests' in message:
            return FailureCategory.RATE_LIMIT
        if isinstance(status, int) and status >= 500:
            return FailureCategory.NETWORK

        # Retried transport errors arrive wrapped; their cause decides
        cause = error.__cause__
        if cause is not None and cause is not error:
            category = self.classify_failure(cause)
            if category != FailureCategory.UNKNOWN:
                return category

        if isinstance(error, (aiohttp.ClientError, ConnectionError, OSError)):
            return FailureCategory.NETWORK
        if isinstance(error, (ValueError, KeyError, TypeError)):
            return FailureCategory.PARSE
        return FailureCategory.UNKNOWN

    def classify_severity(self, error: BaseException, service: str, category: FailureCategory) -> ErrorSeverity:
        # Bad credentials will not fix themselves on retry
        if category == FailureCategory.AUTH:
            return ErrorSeverity.HIGH
        if category == FailureCategory.RATE_LIMIT:
            return ErrorSeverity.MEDIUM
        if self.service_criticality.get(service) == ServiceType.IMPORTANT:
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.LOW

    @staticmethod
    def get_recovery_suggestion(category: FailureCategory) -> Optional[str]:
        return RECOVERY_HINTS.get(category)

    def detect_error_patterns(self) -> List[str]:
        """Services failing the same way at least ``PATTERN_THRESHOLD`` times in recent history."""
        repeats = Counter((ctx.category, ctx.service) for ctx in self.error_history)
        return [
            f"Repeated pattern: {category} in {service} occurred {count} times recently"
            for (category, service), count in repeats.items()
            if count >= PATTERN_THRESHOLD
        ]

    def get_error_statistics(self) -> Dict[str, Any]:
        return {
            'total_errors': sum(self.error_counts.values()),
            'by_category': dict(self.error_counts),
            'by_service': dict(self.service_counts),
            'patterns': self.detect_error_patterns(),
        }


@dataclass
class _Circuit:
    state: str = 'closed'
    failures: int = 0
    opened_at: Optional[datetime] = None


class CircuitBreaker:
    """
    Per-service circuit.

    Opens after ``failure_threshold`` consecutive failures. Once
    ``recovery_timeout`` has passed the next check lets one attempt through
    (half-open); a failure then re-opens it, a success closes it.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: timedelta = timedelta(minutes=5)):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._circuits: Dict[str, _Circuit] = {}

    def _circuit(self, service: str) -> _Circuit:
        return self._circuits.setdefault(service, _Circuit())

    def failures(self, service: str) -> int:
        return self._circuit(service).failures

    def record_success(self, service: str) -> None:
        self._circuits[service] = _Circuit()

    def record_failure(self, service: str) -> None:
        circuit = self._circuit(service)
        circuit.failures += 1
        if circuit.state == 'half_open' or circuit.failures >= self.failure_threshold:
            circuit.state = 'open'
            circuit.opened_at = datetime.now(timezone.utc)

    def is_open(self, service: str) -> bool:
        circuit = self._circuits.get(service)
        if circuit is None or circuit.state != 'open':
            return False
        if datetime.now(timezone.utc) - circuit.opened_at >= self.recovery_timeout:
            circuit.state = 'half_open'
            return False
        return True

    def should_attempt(self, service: str) -> bool:
        return not self.is_open(service)

    def snapshot(self) -> Dict[str, str]:
        return {service: circuit.state for service, circuit in self._circuits.items()}
