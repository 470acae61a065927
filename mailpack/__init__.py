"""
MailPack - background enrichment workflow for scanned mail packages.

Scans are ingested quickly, enriched by an AI analysis worker pool in the
background, and completed by a user survey.
"""

__version__ = "0.1.0"
