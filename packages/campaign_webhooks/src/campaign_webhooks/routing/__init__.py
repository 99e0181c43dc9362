"""
Routing

Tenant resolution for inbound webhooks.
"""

from campaign_webhooks.routing.tenant_resolver import TenantResolver

__all__ = ["TenantResolver"]
