"""
Scheduled Jobs

One class per job; each wires the shared pipeline to its vendor calls and tables.
"""

from growth_sync.jobs.base import (
    Job,
    JobServices,
    load_inbox_accounts,
    load_team_accounts,
    resolve_unipile_account,
)
from growth_sync.jobs.data_freshness import DataFreshnessJob, TableFreshness
from growth_sync.jobs.linkedin_messages import LinkedinMessagesJob
from growth_sync.jobs.profile_views import ProfileViewsJob
from growth_sync.jobs.strategic_connections import StrategicConnectionsJob
from growth_sync.jobs.strategic_people import StrategicPeopleJob
from growth_sync.jobs.team_connections import TeamConnectionsJob

JOBS = {
    "profile-views": ProfileViewsJob,
    "team-connections": TeamConnectionsJob,
    "strategic-connections": StrategicConnectionsJob,
    "strategic-people": StrategicPeopleJob,
    "data-freshness": DataFreshnessJob,
    "linkedin-messages": LinkedinMessagesJob,
}

__all__ = [
    "Job",
    "JobServices",
    "load_inbox_accounts",
    "load_team_accounts",
    "resolve_unipile_account",
    "DataFreshnessJob",
    "TableFreshness",
    "LinkedinMessagesJob",
    "ProfileViewsJob",
    "StrategicConnectionsJob",
    "StrategicPeopleJob",
    "TeamConnectionsJob",
    "JOBS",
]
