"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
Adapters raise PaymentGatewayError on transport or protocol failure; they
never swallow it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"
    KKIAPAY = "kkiapay"


class PaymentMethod(str, Enum):
    """How the renter pays."""

    WALLET = "wallet"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"


class ChargeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundStatus(str, Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ChargeSession:
    """Checkout session returned by initiate_charge."""

    checkout_url: str
    provider_transaction_id: str
    raw_response: dict | None = None


@dataclass
class ChargeVerification:
    """Provider-side state of a charge."""

    status: ChargeStatus
    amount: int | None = None
    raw_response: dict | None = None


@dataclass
class RefundOutcome:
    """Provider acknowledgement of a refund request."""

    status: RefundStatus
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None

    @property
    def acknowledged(self) -> bool:
        return self.status in (RefundStatus.INITIATED, RefundStatus.COMPLETED)


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""

    @abstractmethod
    async def initiate_charge(
        self,
        amount: int,
        currency: str,
        metadata: dict | None = None,
    ) -> ChargeSession:
        """Open a hosted checkout for ``amount``.

        Args:
            amount: Amount in whole currency units (FCFA)
            currency: Currency code (XOF)
            metadata: Opaque data echoed back by the provider

        Returns:
            ChargeSession with the checkout URL and provider transaction id
        """

    @abstractmethod
    async def verify_charge(self, provider_transaction_id: str) -> ChargeVerification:
        """Ask the provider for the current state of a charge."""

    @abstractmethod
    async def initiate_refund(
        self,
        provider_transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundOutcome:
        """Request a refund of a completed charge.

        Args:
            provider_transaction_id: Original charge id
            amount: Refund amount in whole currency units
            reason: Human-readable reason forwarded to the provider

        Returns:
            RefundOutcome; ``failed`` when the provider declined
        """
