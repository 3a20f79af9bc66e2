"""HMAC-SHA256 signature checks for client confirmations and provider webhooks."""

import hashlib
import hmac
from typing import Union


def compute_signature(secret: str, payload: Union[str, bytes]) -> str:
    """Return the hex HMAC-SHA256 digest of ``payload`` keyed with ``secret``."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def _digests_match(expected: str, received: str) -> bool:
    # compare_digest rejects non-ASCII str, and signatures are untrusted input
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def confirmation_payload(remote_order_id: str, remote_payment_id: str) -> str:
    return f"{remote_order_id}|{remote_payment_id}"


class SignatureVerifier:
    """
    Verifies the two kinds of signed input the engine accepts.

    The confirmation secret signs ``order_id|payment_id`` pairs handed back by
    the checkout widget; the webhook secret signs raw webhook bodies. The two
    secrets must differ so that leaking one does not allow forging the other.
    """

    def __init__(self, confirmation_secret: str, webhook_secret: str):
        if not confirmation_secret:
            raise ValueError("confirmation secret must be configured")
        if not webhook_secret:
            raise ValueError("webhook secret must be configured")
        if _digests_match(confirmation_secret, webhook_secret):
            raise ValueError("confirmation and webhook secrets must differ")
        self._confirmation_secret = confirmation_secret
        self._webhook_secret = webhook_secret

    def sign_confirmation(self, remote_order_id: str, remote_payment_id: str) -> str:
        return compute_signature(
            self._confirmation_secret,
            confirmation_payload(remote_order_id, remote_payment_id),
        )

    def verify_confirmation(
        self, remote_order_id: str, remote_payment_id: str, signature: str
    ) -> bool:
        if not signature:
            return False
        expected = self.sign_confirmation(remote_order_id, remote_payment_id)
        return _digests_match(expected, signature.strip().lower())

    def sign_webhook(self, raw_body: bytes) -> str:
        return compute_signature(self._webhook_secret, raw_body)

    def verify_webhook(self, raw_body: bytes, signature: str) -> bool:
        if not signature:
            return False
        expected = self.sign_webhook(raw_body)
        return _digests_match(expected, signature.strip().lower())
