"""
Target Tables

Each table written by a job declares its natural (conflict) key once, here.
"""

from pydantic import BaseModel, ConfigDict


class TableSpec(BaseModel):
    """A backing-store table and the columns that identify one row."""
    model_config = ConfigDict(frozen=True)

    name: str
    conflict_key: tuple[str, ...]
    required: tuple[str, ...] = ()

    @property
    def on_conflict(self) -> str:
        """Comma-joined conflict key, as PostgREST expects it."""
        return ",".join(self.conflict_key)

    def key_of(self, row: dict) -> tuple:
        return tuple(row.get(col) for col in self.conflict_key)

    def missing_columns(self, row: dict) -> list[str]:
        """Conflict-key or required columns with no usable value in row."""
        missing = []
        for col in (*self.conflict_key, *self.required):
            value = row.get(col)
            if value is None or value == "":
                missing.append(col)
        return missing


PROFILE_VISITS = TableSpec(
    name="scrapped_visit",
    conflict_key=(
        "profil_linkedin_url_reaction",
        "linkedin_url_profil_visited",
        "date_scrapped_calculated",
    ),
)

TEAM_CONNECTIONS = TableSpec(
    name="scrapped_connection",
    conflict_key=("profil_linkedin_url_connection", "linkedin_url_owner_post"),
)

STRATEGIC_CONNECTIONS = TableSpec(
    name="scrapped_strategic_connection_concurrent",
    conflict_key=("linkedin_private_id", "sales_nav_description"),
)

STRATEGIC_PEOPLE = TableSpec(
    name="new_scrapp_strategic_people_salesnav",
    conflict_key=("linkedin_private_url", "saved_search_name"),
)

ENRICHED_CONTACTS = TableSpec(
    name="enriched_contacts",
    conflict_key=("original_url",),
    required=("enriched_url",),
)

LINKEDIN_THREADS = TableSpec(
    name="scrapped_linkedin_threads",
    conflict_key=("id",),
    required=("participant_owner_id",),
)

LINKEDIN_MESSAGES = TableSpec(
    name="scrapped_linkedin_messages",
    conflict_key=("id",),
    required=("thread_id",),
)

WORKSPACE_TEAM = "workspace_team"
