"""Bridge to the external verifier used for Biometric, Facial and NFC proofs."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional, Protocol

from ..core.constants import DEFAULT_VERIFIER_TIMEOUT_SECONDS
from ..core.enums import VerificationMethod
from ..core.exceptions import VerifierUnavailable
from .model import CheckInAttempt

logger = logging.getLogger(__name__)


class ExternalVerifier(Protocol):
    def verify(self, method: VerificationMethod, attempt: CheckInAttempt) -> bool:
        raise NotImplementedError


class VerifierGateway:
    """Calls the external verifier with a bounded timeout.

    A timeout or an error raised by the verifier is reported as
    VerifierUnavailable; the caller decides whether to retry.
    """

    def __init__(
        self,
        verifier: Optional[ExternalVerifier] = None,
        *,
        timeout_seconds: float = DEFAULT_VERIFIER_TIMEOUT_SECONDS,
        max_workers: int = 4,
    ):
        self._verifier = verifier
        self._timeout = float(timeout_seconds)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="geoattend-verifier")

    def verify(self, method: VerificationMethod, attempt: CheckInAttempt) -> bool:
        if self._verifier is None:
            raise VerifierUnavailable(f"No verifier configured for {method.value}")

        future = self._executor.submit(self._verifier.verify, method, attempt)
        try:
            return bool(future.result(timeout=self._timeout))
        except FutureTimeout:
            future.cancel()
            logger.warning("verifier timed out method=%s attendee=%s", method.value, attempt.attendee_id)
            raise VerifierUnavailable(f"{method.value} verifier did not answer in time")
        except Exception as e:
            logger.warning("verifier failed method=%s attendee=%s error=%s", method.value, attempt.attendee_id, e)
            raise VerifierUnavailable(f"{method.value} verifier is unavailable") from e

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
