# storefront/wallet.py
import logging
from decimal import Decimal

from storefront.errors import InsufficientFundsError, ValidationError

logger = logging.getLogger(__name__)


class WalletAccount:
    """Spendable balance of one owner.

    Checkout debits before the order is confirmed and hands back the prior
    balance, which :meth:`restore` puts back unchanged if the order fails.
    """

    def __init__(self, balance: Decimal = Decimal("0")) -> None:
        self._balance = Decimal(balance)

    @property
    def balance(self) -> Decimal:
        return self._balance

    def can_afford(self, amount: Decimal) -> bool:
        return amount <= self._balance

    def debit(self, amount: Decimal) -> Decimal:
        """Take ``amount`` off the balance and return the balance before it."""
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")
        if not self.can_afford(amount):
            raise InsufficientFundsError(
                f"You need ₿ {amount:,.2f} but only have ₿ {self._balance:,.2f}"
            )
        previous = self._balance
        self._balance = previous - amount
        logger.debug("wallet debited %s, %s -> %s", amount, previous, self._balance)
        return previous

    def restore(self, previous: Decimal) -> None:
        logger.info("wallet restored to %s (was %s)", previous, self._balance)
        self._balance = previous

    def credit(self, amount: Decimal) -> Decimal:
        """Add a committed refund or withdrawal to the balance."""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")
        self._balance += amount
        return self._balance
