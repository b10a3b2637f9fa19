# storefront/session.py
import logging
import random
import time

import jwt

from storefront.errors import GatewayError, ValidationError
from storefront.models import Owner, Profile
from storefront.state import Preferences

logger = logging.getLogger(__name__)


def generate_guest_id() -> str:
    # Миллисекунды + три случайные цифры, как у сервера
    return f"{int(time.time() * 1000)}{random.randint(0, 999):03d}"


def account_id_from_token(token: str) -> int:
    """Read the account id claim. The signature is checked by the services."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise ValidationError("Invalid token") from e
    account_id = payload.get("id")
    if account_id is None:
        raise ValidationError("Invalid token")
    return int(account_id)


class Session:
    """Resolves the owner of the current request and loads its profile."""

    def __init__(self, preferences: Preferences, account_gateway) -> None:
        self.preferences = preferences
        self.account_gateway = account_gateway

    async def resolve_owner(self) -> Owner:
        token = self.preferences.auth_token
        if token:
            return Owner.account(account_id_from_token(token), token)

        guest_id = self.preferences.guest_id
        if not guest_id:
            guest_id = await self._new_guest_id()
            self.preferences.guest_id = guest_id
        return Owner.guest(guest_id)

    async def _new_guest_id(self) -> str:
        try:
            return await self.account_gateway.request_guest_id()
        except GatewayError as e:
            logger.warning("guest id request failed, generating locally: %s", e)
            return generate_guest_id()

    async def load_profile(self, owner: Owner) -> Profile:
        """Profile of an account owner; guests have an empty one."""
        if owner.is_guest:
            return Profile()
        return await self.account_gateway.profile(owner)
