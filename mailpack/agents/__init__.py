"""
MailPack agents.

- mail_analyzer: extracts sender, offer and urgency from mail OCR text
"""

from mailpack.agents.mail_analyzer import (
    GeminiMailAnalyzer,
    MailAnalyzer,
    mail_analyzer_agent,
)

__all__ = ["GeminiMailAnalyzer", "MailAnalyzer", "mail_analyzer_agent"]
