"""
Validación estructural del documento normalizado y política opcional de actividades
"""
import logging
from typing import List, Dict, Any, Optional

from etl_domain import REQUIRED_OUTPUT_SECTIONS, ActivityPolicyConfig, StructuralInvariantError


class CourseValidator:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, data: Dict[str, Any]) -> List[str]:
        """Raise on a broken structure; return advisory warnings otherwise"""
        missing = [key for key in REQUIRED_OUTPUT_SECTIONS if data.get(key) is None]
        if missing:
            raise StructuralInvariantError(f"Missing required sections: {', '.join(missing)}")

        counts = data["activityCounts"]
        total = counts.get("total")
        sum_by_type = sum((counts.get("byType") or {}).values())
        if total != sum_by_type:
            raise StructuralInvariantError(f"Activity count mismatch: total={total}, sum={sum_by_type}")

        week_numbers = [week.get("weekNumber") for week in data["weeks"]]
        if week_numbers != list(range(1, len(week_numbers) + 1)):
            raise StructuralInvariantError(f"Week numbers are not sequential: {week_numbers}")

        warnings = []
        unmapped = [
            str(activity.get("code") or activity.get("id"))
            for week in data["weeks"]
            for activity in week.get("activities", [])
            if (activity.get("activityType") or "").lower() == "assignment" and not activity.get("competencies")
        ]
        if unmapped:
            message = f"Found assignments without competency mappings: {', '.join(unmapped)}"
            self.logger.warning(message)
            warnings.append(message)
        return warnings


class ActivityPolicy:
    """
    Optional authoring-convention checks over a normalized document.

    Findings are advisory only; they never fail a job.
    """

    def __init__(self, config: ActivityPolicyConfig = ActivityPolicyConfig(),
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def expected_code(week_number: int, activity_type: str, sequence_number: int) -> str:
        type_char = (activity_type or "")[:1].lower()
        return f"u{week_number:02d}{type_char}{sequence_number}"

    def check(self, data: Dict[str, Any]) -> List[str]:
        issues = []
        seen = set()

        for week in data.get("weeks", []):
            week_number = week.get("weekNumber")
            sequences = {"study": [], "discussion": [], "assignment": []}

            for activity in week.get("activities", []):
                activity_id = activity.get("id")
                kind = (activity.get("activityType") or "").lower()
                sequence = activity.get("sequenceNumber")
                label = f"Activity {activity_id} ({activity.get('title')}) in Week {week_number}"

                if activity_id in seen:
                    issues.append(f"Duplicate activity ID {activity_id} found in week {week_number}")
                seen.add(activity_id)

                if kind in sequences and isinstance(sequence, int):
                    sequences[kind].append(sequence)

                if self.config.require_text and not activity.get("text"):
                    issues.append(f"{label} is missing text")

                if self.config.validate_sequencing and (not isinstance(sequence, int) or sequence <= 0):
                    issues.append(f"{label} has invalid sequence number")

                if self.config.require_activity_code and isinstance(sequence, int):
                    expected = self.expected_code(week_number, kind, sequence)
                    if activity.get("code") != expected:
                        issues.append(f"Activity {activity_id} has incorrect code. "
                                      f"Expected: {expected}, Got: {activity.get('code')}")

                if self.config.check_competency_mapping and kind == "assignment" and not activity.get("competencies"):
                    issues.append(f"Assignment {activity_id} ({activity.get('title')}) in Week {week_number} "
                                  f"has no competency mappings")

            if self.config.enforce_type_order:
                issues.extend(self._type_order_issues(week_number, sequences))

        for issue in issues:
            self.logger.warning(issue)
        return issues

    @staticmethod
    def _type_order_issues(week_number: int, sequences: Dict[str, List[int]]) -> List[str]:
        issues = []
        last_study = max(sequences["study"], default=0)
        first_discussion = min(sequences["discussion"], default=None)
        last_discussion = max(sequences["discussion"], default=0)
        first_assignment = min(sequences["assignment"], default=None)

        if first_discussion is not None and first_discussion < last_study:
            issues.append(f"Week {week_number}: Discussion appears before Study activities")
        if first_assignment is not None and first_assignment < max(last_study, last_discussion):
            issues.append(f"Week {week_number}: Assignment appears before Discussion activities")
        return issues
