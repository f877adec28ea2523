"""
Strategic People Job

Collects people newly matching a single account's Sales Navigator saved
searches into new_scrapp_strategic_people_salesnav.
"""

from growth_sync.jobs.saved_search import SavedSearchJob
from growth_sync.models.entities import NormalizedView
from growth_sync.models.tables import STRATEGIC_PEOPLE
from growth_sync.utils.config import SavedSearchConfig, StrategicJobConfig
from growth_sync.utils.recency import profile_url


class StrategicPeopleJob(SavedSearchJob):
    """Several saved searches behind one account."""

    name = "Strategic People SalesNav"
    table = STRATEGIC_PEOPLE

    @property
    def job_config(self) -> StrategicJobConfig:
        return self.config.jobs.strategic_people

    def build_row(
        self,
        search: SavedSearchConfig,
        view: NormalizedView,
        data: dict,
        scraping_date: str,
    ) -> dict:
        return {
            "linkedin_private_url": data.get("linkedin_private_url") or view.subject_id,
            "linkedin_profile_url": data.get("linkedin_profile_url") or profile_url(view.subject_id),
            "scraping_date": scraping_date,
            "saved_search_id": search.saved_search_id,
            "saved_search_name": search.name,
        }
