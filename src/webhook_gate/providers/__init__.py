"""Provider signature verifiers.

Each verifier takes ``(payload_raw, signature_header, secret)`` and returns a
:class:`VerificationResult`. Use :func:`get_verifier` to look one up by the
provider name passed on the command line.
"""

from webhook_gate.errors import UnsupportedProviderError
from webhook_gate.providers.base import VerificationResult, Verifier
from webhook_gate.providers.razorpay import verify_razorpay
from webhook_gate.providers.stripe import verify_stripe

VERIFIERS: dict[str, Verifier] = {
    "stripe": verify_stripe,
    "razorpay": verify_razorpay,
}


def get_verifier(provider: str) -> Verifier:
    """Return the verifier registered for ``provider``.

    Raises:
        UnsupportedProviderError: If no verifier is registered.
    """
    try:
        return VERIFIERS[provider]
    except KeyError:
        raise UnsupportedProviderError(f"Unsupported provider: {provider}") from None


__all__ = [
    "VERIFIERS",
    "VerificationResult",
    "Verifier",
    "get_verifier",
    "verify_razorpay",
    "verify_stripe",
]
