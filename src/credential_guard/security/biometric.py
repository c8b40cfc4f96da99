"""Biometric gate contract.

The credential core never performs biometric I/O. A platform gate runs the
prompt asynchronously and reports one of a fixed set of outcomes; the
application façade treats ``SUCCESS`` as equivalent to a successful master
password check.

Cancellation: the caller cancels the awaiting task. Gates must release any
platform-held prompt resource when ``asyncio.CancelledError`` is raised
inside ``authenticate`` and then let the cancellation propagate.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class BiometricAvailability(str, Enum):
    """Device biometric capability."""
    AVAILABLE = "available"
    NO_HARDWARE = "no_hardware"
    HW_UNAVAILABLE = "hw_unavailable"
    NOT_ENROLLED = "not_enrolled"
    UNKNOWN = "unknown"


class BiometricOutcome(str, Enum):
    """Result of one biometric prompt."""
    SUCCESS = "success"
    CANCELLED = "cancelled"
    LOCKED_OUT = "locked_out"
    ERROR = "error"


@dataclass(frozen=True)
class BiometricResult:
    outcome: BiometricOutcome
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is BiometricOutcome.SUCCESS


@dataclass(frozen=True)
class BiometricPrompt:
    """Texts shown by the platform prompt."""
    title: str = "Verify your identity"
    subtitle: str = "Unlock with fingerprint or face recognition"
    description: str = "Verify your identity to access the password manager"


class BiometricGate(ABC):
    """Platform biometric prompt."""

    @abstractmethod
    def availability(self) -> BiometricAvailability:
        """Report whether biometric authentication can run on this device."""

    @abstractmethod
    async def authenticate(self, prompt: BiometricPrompt) -> BiometricResult:
        """Run the prompt and report the outcome.

        Retryable failures (unrecognised finger) are handled inside the
        prompt and do not complete the call.
        """


class UnavailableBiometricGate(BiometricGate):
    """Gate for platforms without biometric support."""

    def availability(self) -> BiometricAvailability:
        return BiometricAvailability.NO_HARDWARE

    async def authenticate(self, prompt: BiometricPrompt) -> BiometricResult:
        return BiometricResult(
            BiometricOutcome.ERROR, "Biometric authentication is not available"
        )
