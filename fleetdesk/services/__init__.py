"""
External collaborators.

- BlobStore: file uploads with a local-disk fallback
- SeasonalReporter: secondary records for seasonal-programme missions
"""

from fleetdesk.services.uploads import BlobStore
from fleetdesk.services.seasonal import SeasonalReporter

__all__ = ['BlobStore', 'SeasonalReporter']
