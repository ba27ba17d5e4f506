"""
User Directory Service

Resolves who to notify for a tenant: email from Supabase Auth (admin API),
display name from the profiles table. The Supabase client is synchronous,
so calls run in worker threads bounded by a timeout.
"""

import asyncio
import logging
from typing import Optional

from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions


logger = logging.getLogger(__name__)


class UserDirectoryService:
    """
    Lookup of notification targets.

    Args:
        supabase_url: Project URL
        service_role_key: Key with auth admin rights
        timeout_seconds: Bound for each lookup
        client: Pre-built client (tests)
    """

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        timeout_seconds: float = 15.0,
        client: Optional[Client] = None,
    ):
        self._supabase_url = supabase_url
        self._service_role_key = service_role_key
        self._timeout = timeout_seconds
        self._client = client

    @property
    def supabase(self) -> Client:
        if self._client is None:
            options = ClientOptions(
                postgrest_client_timeout=int(self._timeout),
                auto_refresh_token=False,
                persist_session=False,
            )
            self._client = create_client(
                self._supabase_url,
                self._service_role_key,
                options,
            )
        return self._client

    async def get_user_email(self, tenant_id: str) -> Optional[str]:
        """Email of the tenant's auth user, or None if it has none."""
        response = await asyncio.wait_for(
            asyncio.to_thread(
                lambda: self.supabase.auth.admin.get_user_by_id(tenant_id)
            ),
            timeout=self._timeout,
        )
        user = getattr(response, "user", None)
        email = getattr(user, "email", None)
        return email or None

    async def get_display_name(self, tenant_id: str) -> Optional[str]:
        """profiles.full_name for the tenant, or None."""
        response = await asyncio.wait_for(
            asyncio.to_thread(
                lambda: self.supabase.table("profiles")
                .select("full_name")
                .eq("id", tenant_id)
                .maybe_single()
                .execute()
            ),
            timeout=self._timeout,
        )
        data = getattr(response, "data", None) if response is not None else None
        if not data:
            return None
        return data.get("full_name") or None
