"""
Client-facing services.

- ingestion: scan submission, finalize, retry and reprocess
- survey: survey submission
- status: display status projection
"""

from mailpack.services.ingestion import IngestionGateway, ScanImage
from mailpack.services.status import StatusProjector, project
from mailpack.services.survey import SurveyGateway

__all__ = [
    "IngestionGateway",
    "ScanImage",
    "StatusProjector",
    "SurveyGateway",
    "project",
]
