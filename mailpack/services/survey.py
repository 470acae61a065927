"""
SurveyGateway: records the user survey and completes a package.
"""

import logging
from datetime import datetime, timezone

from mailpack.db.store import PackageStore
from mailpack.errors import AlreadyComplete, InvalidSurvey, NotReady, PreconditionFailed
from mailpack.models.package import (
    EnrichmentResult,
    MailPackage,
    PackageState,
    SurveyAnswers,
    SurveyResult,
)

logger = logging.getLogger(__name__)


def build_survey_result(
    enrichment: EnrichmentResult, answers: SurveyAnswers
) -> SurveyResult:
    """
    Combine the AI enrichment with the user's answers.

    User corrections win over enriched values. The detected brand is only
    kept when the user confirmed it.
    """
    brand_confirmed = answers.brand_name_answer == "yes"
    brand_name = answers.brand_name
    if brand_name is None and brand_confirmed:
        brand_name = enrichment.brand_name

    return SurveyResult(
        recipient_answer=answers.recipient_answer,
        brand_name_answer=answers.brand_name_answer,
        intention_answer=answers.intention_answer,
        industry=answers.industry or enrichment.industry,
        brand_name=brand_name,
        primary_offer=answers.primary_offer or enrichment.primary_offer,
        company_validated=brand_confirmed,
        is_approved=answers.is_approved,
    )


class SurveyGateway:
    """Accepts survey answers for packages that are ready for survey."""

    def __init__(self, store: PackageStore):
        self.store = store

    def submit_survey(self, package_id: str, answers: SurveyAnswers) -> MailPackage:
        """
        Record survey answers and move the package to survey_complete.

        Args:
            package_id: Package to complete
            answers: User answers

        Returns:
            The completed package

        Raises:
            PackageNotFound: Package does not exist
            NotReady: Enrichment has not finished (or failed)
            AlreadyComplete: A survey was already recorded
            InvalidSurvey: The recipient answer is required but missing
        """
        package = self.store.get(package_id)
        self._check_ready(package)

        assert package.enrichment is not None
        if package.enrichment.has_specific_recipient and answers.recipient_answer is None:
            raise InvalidSurvey(
                f"recipient_answer is required for mail addressed to "
                f"'{package.enrichment.recipient}'"
            )

        result = build_survey_result(package.enrichment, answers)

        def complete(current: MailPackage) -> MailPackage:
            current.survey_result = result
            current.survey_completed_at = datetime.now(timezone.utc)
            current.state = PackageState.SURVEY_COMPLETE
            return current

        try:
            completed = self.store.apply_transition(
                package_id, PackageState.READY_FOR_SURVEY, complete
            )
        except PreconditionFailed:
            # Lost to a concurrent submit or reprocess
            self._check_ready(self.store.get(package_id))
            raise

        logger.info(
            "Survey completed for package %s",
            package_id,
            extra={
                "json_fields": {
                    "package_id": package_id,
                    "company_validated": result.company_validated,
                    "is_approved": result.is_approved,
                }
            },
        )
        return completed

    @staticmethod
    def _check_ready(package: MailPackage) -> None:
        if package.state == PackageState.SURVEY_COMPLETE:
            raise AlreadyComplete(package.id)
        if package.state != PackageState.READY_FOR_SURVEY or package.enrichment is None:
            raise NotReady(package.id, package.state.value)
