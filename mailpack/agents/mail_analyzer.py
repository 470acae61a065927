"""
Mail Analyzer Agent

This agent reads the combined OCR text of a mail package and extracts who sent
it, what it offers and how urgent it is.
"""

import json
import logging
from typing import Optional, Protocol

from google.adk.agents.llm_agent import Agent
from google.adk.runners import InMemoryRunner
from google.genai import errors as genai_errors
from google.genai.types import Content, Part
from pydantic import BaseModel, Field, ValidationError

from mailpack.config import DEFAULT_MODEL
from mailpack.errors import AnalysisRejected, AnalysisUnavailable
from mailpack.models.package import EnrichmentResult

logger = logging.getLogger(__name__)


class MailAnalyzer(Protocol):
    """AI analysis collaborator used by the enrichment workers."""

    async def analyze(self, text: str) -> EnrichmentResult:
        """
        Analyze combined OCR text.

        Raises:
            AnalysisTimeout: The service did not answer in time
            AnalysisUnavailable: Network or server-side failure (retried)
            AnalysisRejected: The service refused the input (not retried)
        """
        ...


class MailAnalysisOutput(BaseModel):
    """Output schema for the mail analyzer agent"""

    industry: str = Field(description="Industry of the sender, e.g. Retail, Finance")
    brand_name: Optional[str] = Field(
        default=None, description="Brand or company that sent the mail"
    )
    primary_offer: Optional[str] = Field(
        default=None, description="Main offer or call to action, in a short phrase"
    )
    response_intention: Optional[str] = Field(
        default=None,
        description="What the sender wants: purchase, sign_up, donate, informational",
    )
    name_check: Optional[str] = Field(
        default=None,
        description="verified if a personal addressee name is printed, else unverified",
    )
    urgency_level: Optional[str] = Field(
        default=None, description="low, medium or high"
    )
    estimated_value: Optional[str] = Field(
        default=None, description="Monetary value of the offer if stated"
    )
    recipient: Optional[str] = Field(
        default=None, description="Addressee exactly as printed, or CURRENT RESIDENT"
    )
    mail_type: Optional[str] = Field(
        default=None, description="promotional, statement, bill, personal, other"
    )


mail_analyzer_agent = Agent(
    name="mail_analyzer",
    description="Extracts sender, offer and urgency from OCR text of physical mail",
    instruction="""
You analyze the OCR text of a single piece of physical mail. The text may span
several images, each introduced by a "--- Image N ---" header. OCR output is
noisy: fix obvious character errors in names but never invent content.

Extract:
1. **industry**: the sender's industry (Retail, Finance, Insurance, Telecom,
   Healthcare, Nonprofit, Travel, Automotive, Real Estate, Other)
2. **brand_name**: the brand or company name as it appears on the mail
3. **primary_offer**: the main offer or call to action in one short phrase
4. **response_intention**: what the sender asks the recipient to do
5. **name_check**: "verified" if a personal addressee name is printed,
   otherwise "unverified"
6. **urgency_level**: "high" for explicit deadlines within two weeks,
   "medium" for any other deadline, otherwise "low"
7. **estimated_value**: the stated value of the offer, if any
8. **recipient**: the addressee line exactly as printed, or "CURRENT RESIDENT"
9. **mail_type**: promotional, statement, bill, personal or other

Leave a field empty when the text gives no evidence for it.

**Output Format:**
Return a structured JSON with the extracted fields.
""",
    model=DEFAULT_MODEL,
    output_schema=MailAnalysisOutput,
)


class GeminiMailAnalyzer:
    """MailAnalyzer backed by the mail analyzer agent."""

    def __init__(self, agent: Agent = mail_analyzer_agent, user_id: str = "mailpack"):
        self._runner = InMemoryRunner(agent=agent, app_name="mailpack-analyzer")
        self._user_id = user_id

    async def analyze(self, text: str) -> EnrichmentResult:
        if not text or not text.strip():
            raise AnalysisRejected("OCR text is empty")

        prompt = f"""Analyze this piece of mail:

{text}"""
        content = Content(parts=[Part(text=prompt)])

        try:
            result_text = await self._run(content)
        except genai_errors.ClientError as e:
            raise AnalysisRejected(f"Analysis request rejected: {e}") from e
        except genai_errors.ServerError as e:
            raise AnalysisUnavailable(f"Analysis service error: {e}") from e
        except (ConnectionError, OSError) as e:
            raise AnalysisUnavailable(f"Analysis service unreachable: {e}") from e

        if not result_text:
            raise AnalysisUnavailable("No result from mail analyzer agent")

        try:
            output = MailAnalysisOutput.model_validate(json.loads(result_text))
        except (json.JSONDecodeError, ValidationError) as e:
            # Model output is nondeterministic; another attempt may parse
            raise AnalysisUnavailable(f"Unparseable analyzer output: {e}") from e

        logger.info(
            "Mail analyzed: industry=%s, brand=%s", output.industry, output.brand_name
        )
        return convert_output_to_enrichment(output)

    async def _run(self, content: Content) -> str:
        """Run the agent in a throwaway session and return its last text part."""
        sessions = self._runner.session_service
        session = await sessions.create_session(
            app_name=self._runner.app_name,
            user_id=self._user_id,
        )
        try:
            result_text = ""
            async for event in self._runner.run_async(
                user_id=self._user_id,
                session_id=session.id,
                new_message=content,
            ):
                if event.content and event.content.parts:
                    for part in event.content.parts:
                        if part.text:
                            result_text = part.text
            return result_text
        finally:
            await sessions.delete_session(
                app_name=self._runner.app_name,
                user_id=self._user_id,
                session_id=session.id,
            )


def convert_output_to_enrichment(output: MailAnalysisOutput) -> EnrichmentResult:
    """Convert agent output to the EnrichmentResult stored on the package."""
    return EnrichmentResult(**output.model_dump())
