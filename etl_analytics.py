"""
Analítica de segunda pasada sobre el documento normalizado
"""
from collections import Counter
from typing import List, Dict, Any

from etl_transform import normalize_type


def _percentage(count: float, total: float) -> float:
    return round(count / total * 100, 1) if total else 0.0


def _type_key(activity_type: Any) -> str:
    return normalize_type(activity_type).upper()


class AnalyticsGenerator:
    """
    Workload, competency and sequencing statistics for a normalized course.

    Reads only the finished document, so it can run on a freshly built
    document or on one loaded back from storage.
    """

    def __init__(self, document: Dict[str, Any]):
        self.document = document
        self.weeks: List[Dict[str, Any]] = document.get("weeks") or []
        self.competencies: List[Dict[str, Any]] = document.get("competencies") or []
        self.activities = [activity for week in self.weeks for activity in week.get("activities", [])]

    def generate(self) -> Dict[str, Any]:
        graded = self.graded_split()
        workload = self.weekly_workload()
        return {
            "overview": {
                "totalActivities": len(self.activities),
                "totalPoints": (self.document.get("course") or {}).get("totalPoints", 0),
                "averagePointsPerActivity": graded["totalPoints"] / graded["graded"] if graded["graded"] else 0,
                "typeDistribution": self.type_distribution(),
                "gradedVsNonGraded": graded,
                "competencyCoverage": self.competency_coverage(),
            },
            "workloadAnalysis": {
                "weeklyWorkload": workload,
                "heaviestWeek": workload[0] if workload else None,
                "lightestWeek": workload[-1] if workload else None,
                "averageActivitiesPerWeek": len(self.activities) / len(self.weeks) if self.weeks else 0,
            },
            "sequencing": {
                "typicalPatterns": self.sequencing_patterns(),
                "weeklyPatterns": {
                    str(week["weekNumber"]): [_type_key(a.get("activityType")) for a in week.get("activities", [])]
                    for week in self.weeks
                },
            },
            "competencyMapping": {
                "coverageByWeek": self.coverage_by_week(),
                **self.mapping_anomalies(),
            },
        }

    def type_distribution(self) -> List[Dict[str, Any]]:
        total = len(self.activities)
        counts = Counter(_type_key(activity.get("activityType")) for activity in self.activities)
        return [
            {"type": activity_type, "count": count, "percentage": _percentage(count, total)}
            for activity_type, count in counts.items()
        ]

    def graded_split(self) -> Dict[str, Any]:
        split = {"graded": 0, "nonGraded": 0, "totalPoints": 0}
        for activity in self.activities:
            points = activity.get("gradePoints") or 0
            if points > 0:
                split["graded"] += 1
                split["totalPoints"] += points
            else:
                split["nonGraded"] += 1
        return split

    def weekly_workload(self) -> List[Dict[str, Any]]:
        """Per-week load, heaviest first (ties keep week order)"""
        workload = []
        for week in self.weeks:
            activities = week.get("activities", [])
            total_points = sum(a.get("gradePoints") or 0 for a in activities)
            workload.append({
                "weekNumber": week["weekNumber"],
                "totalActivities": len(activities),
                "totalPoints": total_points,
                "typeBreakdown": dict(Counter(_type_key(a.get("activityType")) for a in activities)),
                "averagePointsPerActivity": total_points / len(activities) if activities else 0,
            })
        return sorted(workload, key=lambda stats: stats["totalPoints"], reverse=True)

    def competency_coverage(self) -> Dict[str, Dict[str, Any]]:
        coverage = {}
        for competency in self.competencies:
            activities = competency.get("activities", [])
            coverage[str(competency.get("id"))] = {
                "competencyText": competency.get("text"),
                "totalActivities": len(activities),
                "totalPoints": competency.get("totalPoints", 0),
                "weeksCovered": list(dict.fromkeys(a.get("weekNumber") for a in activities)),
                "activityTypes": dict(Counter(_type_key(a.get("type")) for a in activities)),
            }
        return coverage

    def coverage_by_week(self) -> List[Dict[str, Any]]:
        coverage = []
        for week in self.weeks:
            covered = list(dict.fromkeys(
                competency_id
                for activity in week.get("activities", [])
                for competency_id in activity.get("competencies") or []
            ))
            coverage.append({
                "weekNumber": week["weekNumber"],
                "competenciesCovered": covered,
                "coveragePercentage": _percentage(len(covered), len(self.competencies)),
            })
        return coverage

    def mapping_anomalies(self) -> Dict[str, List[Dict[str, Any]]]:
        multiple, unmapped = [], []
        for activity in self.activities:
            competencies = activity.get("competencies") or []
            if len(competencies) > 1:
                multiple.append({"activityId": activity.get("id"), "code": activity.get("code"),
                                 "competencies": competencies})
            elif not competencies:
                unmapped.append({"activityId": activity.get("id"), "code": activity.get("code"),
                                 "type": _type_key(activity.get("activityType"))})
        return {"multipleCompetencyActivities": multiple, "unmappedActivities": unmapped}

    def sequencing_patterns(self) -> List[Dict[str, Any]]:
        patterns = Counter(
            ",".join(_type_key(a.get("activityType")) for a in week.get("activities", []))
            for week in self.weeks
        )
        # most_common keeps first-seen order among equal counts
        return [
            {
                "pattern": key.split(",") if key else [],
                "frequency": count,
                "percentage": _percentage(count, len(self.weeks)),
            }
            for key, count in patterns.most_common()
        ]
