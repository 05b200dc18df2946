"""Per-team feature flags."""

from typing import Dict, Iterable, Optional

from ...infrastructure.config.settings import Settings

RAG_INDEXING_FLAG = "rag_indexing"


class FeatureFlagService:
    """Feature flags resolved from configuration.

    RAG indexing is on for a team when it is globally enabled and the team is
    in the allow-list; an empty allow-list admits every team.
    """

    def __init__(self, rag_indexing_enabled: bool = True, rag_indexing_teams: Optional[Iterable[str]] = None):
        self.rag_indexing_enabled = rag_indexing_enabled
        self.rag_indexing_teams = frozenset(rag_indexing_teams or ())

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeatureFlagService":
        return cls(settings.FEATURE_RAG_INDEXING_ENABLED, settings.FEATURE_RAG_INDEXING_TEAMS_LIST)

    async def get_flags(self, team_id: str) -> Dict[str, bool]:
        allowed = not self.rag_indexing_teams or team_id in self.rag_indexing_teams
        return {RAG_INDEXING_FLAG: self.rag_indexing_enabled and allowed}
