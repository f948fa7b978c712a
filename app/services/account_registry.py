import logging
from collections.abc import Callable, Iterable

from app.core.config import StripeAccountConfig, settings
from app.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[StripeAccountConfig], StripeGateway]


class AccountRegistry:
    """Configured Stripe accounts, read-only to the checkout core.

    A webhook secret is expected to belong to exactly one account. That is a
    configuration rule; nothing here rejects duplicates.
    """

    def __init__(
        self,
        accounts: Iterable[StripeAccountConfig],
        gateway_factory: GatewayFactory = StripeGateway,
    ):
        # sorted() is stable, so equal "order" values keep their list position
        self._accounts = sorted(accounts, key=lambda a: a.order)
        self._gateway_factory = gateway_factory

    def all(self) -> list[StripeAccountConfig]:
        return list(self._accounts)

    def get(self, label: str | None) -> StripeAccountConfig | None:
        if not label:
            return None
        for account in self._accounts:
            if account.label == label:
                return account
        return None

    def verification_candidates(self) -> list[StripeAccountConfig]:
        """Accounts able to verify a webhook; ``active`` does not matter here."""
        return [a for a in self._accounts if a.secret_key and a.webhook_secret]

    def active_for_charges(self) -> StripeAccountConfig | None:
        for account in self._accounts:
            if account.active and account.secret_key and account.publishable_key:
                return account

        for account in self._accounts:
            if account.secret_key and account.publishable_key:
                logger.warning(
                    f"[accounts] no active account, falling back to {account.label}"
                )
                return account

        return None

    def gateway_for(self, account: StripeAccountConfig) -> StripeGateway:
        return self._gateway_factory(account)


def get_account_registry() -> AccountRegistry:
    return AccountRegistry(settings.STRIPE_ACCOUNTS)
