from Aletheia.harvest.base import HarvestedBlob, SearchPage, SearchSource
from Aletheia.harvest.github import GitHubCodeSearch
from Aletheia.harvest.gitlab import GitLabBlobSearch
from Aletheia.harvest.harvester import HarvestProgress, Harvester

__all__ = [
    "GitHubCodeSearch",
    "GitLabBlobSearch",
    "HarvestProgress",
    "HarvestedBlob",
    "Harvester",
    "SearchPage",
    "SearchSource",
]
