"""External integration client implementations."""

from cardcatalog.infrastructure.integrations.acoustid_client import AcoustIdClient
from cardcatalog.infrastructure.integrations.musicbrainz_client import MusicBrainzClient
from cardcatalog.infrastructure.integrations.reference_database import SqlReferenceDatabase
from cardcatalog.infrastructure.integrations.search_index_client import SearchIndexClient

__all__ = [
    "AcoustIdClient",
    "MusicBrainzClient",
    "SearchIndexClient",
    "SqlReferenceDatabase",
]
