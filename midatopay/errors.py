"""
Error taxonomy for MidatoPay
"""

from typing import Optional


class MidatoPayError(Exception):
    """Base class for all MidatoPay domain errors"""


class UnsupportedCurrency(MidatoPayError):
    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Unsupported currency: {currency}")


class TransactionFailed(MidatoPayError):
    """Transaction reached finality but did not execute successfully"""

    def __init__(self, status: str, reason: Optional[str] = None):
        self.status = status
        self.reason = reason
        message = f"Transaction failed: {status}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class PaymentEventNotFound(MidatoPayError):
    def __init__(self, transaction_hash: str, payment_id: str):
        self.transaction_hash = transaction_hash
        self.payment_id = payment_id
        super().__init__(
            f"No PaymentReceived event for {payment_id} in transaction {transaction_hash}"
        )


class TransactionNotFound(MidatoPayError):
    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Transaction {payment_id} not found")


class InvalidCredentials(MidatoPayError):
    pass


class CorruptedWalletRecord(MidatoPayError):
    pass


class RpcUnavailable(MidatoPayError):
    """The Starknet node could not be reached or did not answer in time"""


class RpcRequestError(MidatoPayError):
    """The node answered with a JSON-RPC error object"""

    def __init__(self, code: int, message: str, data=None):
        self.code = code
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class EventDecodeError(MidatoPayError):
    """A chain event does not match the expected event schema"""


class InvalidQRCode(MidatoPayError):
    pass


class OracleError(MidatoPayError):
    pass
