"""
External Service Clients

Unipile (LinkedIn proxy), the profile-enrichment function and Slack webhooks.
"""

from growth_sync.clients.enrich import EnrichFunctionClient
from growth_sync.clients.slack import SlackNotifier, format_error_report, format_success_recap
from growth_sync.clients.unipile import UnipileClient, build_viewers_url

__all__ = [
    "EnrichFunctionClient",
    "SlackNotifier",
    "UnipileClient",
    "build_viewers_url",
    "format_error_report",
    "format_success_recap",
]
