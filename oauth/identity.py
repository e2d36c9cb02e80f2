"""Maps a LINE user to the application's Supabase account.

Accounts are created by the companion app with LINE-derived credentials:
    email:    {line_user_id}@line.com
    password: {COMMON_PASSWORD_PREFIX}{line_user_id[:6]}
Adjust credentials_for() if your app provisions users differently.
"""

import asyncio
import logging

from supabase import AuthApiError, create_client

from oauth.errors import AccountNotLinked, UnexpectedFailure

logger = logging.getLogger(__name__)


class SupabaseIdentityExchange:
    def __init__(self, supabase_url: str, supabase_anon_key: str, password_prefix: str, client_factory=create_client):
        self.supabase_url = supabase_url
        self.supabase_anon_key = supabase_anon_key
        self.password_prefix = password_prefix
        self.client_factory = client_factory

    def credentials_for(self, line_user_id: str) -> dict:
        return {
            "email": f"{line_user_id}@line.com",
            "password": f"{self.password_prefix}{line_user_id[:6]}",
        }

    def _sign_in(self, line_user_id: str):
        client = self.client_factory(self.supabase_url, self.supabase_anon_key)
        response = client.auth.sign_in_with_password(self.credentials_for(line_user_id))
        return client, response

    async def sign_in(self, line_user_id: str):
        """Sign in as the linked account; returns (client, account_id).

        Raises AccountNotLinked when Supabase rejects the credentials and
        UnexpectedFailure when the exchange itself fails.
        """
        try:
            client, response = await asyncio.to_thread(self._sign_in, line_user_id)
        except AuthApiError as e:
            if e.status and e.status >= 500:
                logger.error(f"[IDENTITY] Supabase auth error ({e.status}): {e.message}")
                raise UnexpectedFailure(kind="IDENTITY_EXCHANGE_FAILED") from e
            logger.info(f"[IDENTITY] No linked account for LINE user {line_user_id}: {e.message}")
            raise AccountNotLinked() from e
        except Exception as e:
            logger.exception(f"[IDENTITY] Identity exchange failed: {e}")
            raise UnexpectedFailure(kind="IDENTITY_EXCHANGE_FAILED") from e

        if not response.user:
            logger.info(f"[IDENTITY] No linked account for LINE user {line_user_id}")
            raise AccountNotLinked()

        return client, response.user.id

    async def resolve(self, line_user_id: str) -> str:
        """Return the Supabase user id linked to the LINE user."""
        _, account_id = await self.sign_in(line_user_id)
        logger.info(f"[IDENTITY] LINE user {line_user_id} resolved to account {account_id}")
        return account_id
