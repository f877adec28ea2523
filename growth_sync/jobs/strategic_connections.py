"""
Strategic Connections Job

Tracks new connections of competitors' salespeople through one Sales Navigator
saved search per competitor; rows land in scrapped_strategic_connection_concurrent.
"""

import json
from typing import Optional

from growth_sync.jobs.saved_search import RowRejected, SavedSearchJob
from growth_sync.models.entities import NormalizedView
from growth_sync.models.tables import STRATEGIC_CONNECTIONS
from growth_sync.utils.config import SavedSearchConfig, StrategicJobConfig
from growth_sync.utils.recency import profile_url

COPIED_FIELDS = (
    "linkedin_private_url",
    "first_name",
    "last_name",
    "full_name",
    "linkedin_headline",
    "linkedin_job_title",
    "company_linkedin_private_url",
    "company_name",
    "location",
    "linkedin_profile_picture_url",
    "country",
    "linkedin_private_id",
    "job_strategic_role",
)


def connected_with_value(value) -> Optional[str]:
    """JSON-encode a non-empty list, otherwise None."""
    if isinstance(value, list) and value:
        return json.dumps(value)
    return None


class StrategicConnectionsJob(SavedSearchJob):
    """One saved search per competitor account."""

    name = "Strategic Connections"
    table = STRATEGIC_CONNECTIONS

    @property
    def job_config(self) -> StrategicJobConfig:
        return self.config.jobs.strategic_connections

    def label(self, search: SavedSearchConfig) -> str:
        # "Adrien Cousa - Abraxio" -> "Abraxio"
        parts = search.name.split(" - ", 1)
        return parts[1] if len(parts) > 1 else search.name

    def build_row(
        self,
        search: SavedSearchConfig,
        view: NormalizedView,
        data: dict,
        scraping_date: str,
    ) -> dict:
        if not data.get("linkedin_private_id"):
            raise RowRejected(
                "missing_id",
                "linkedin_private_id manquant",
                profile=data.get("full_name") or view.subject_id,
            )

        row = {field: data.get(field) for field in COPIED_FIELDS}
        row.update({
            "scraping_date": scraping_date,
            "sales_nav_source": search.key,
            "sales_nav_description": search.name,
            "linkedin_profile_url": data.get("linkedin_profile_url") or profile_url(view.subject_id),
            "connected_with": connected_with_value(data.get("connected_with")),
        })
        return row
