"""
Transformación del export de curso a un documento normalizado por semanas
"""
import logging
import re
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple

from etl_domain import (
    DEFAULT_GRADING_SCHEME,
    DEFAULT_TYPE_PRECEDENCE,
    TRACKED_ACTIVITY_TYPES,
    TYPE_PRECEDENCE,
)
from etl_resolver import ReferenceResolver, as_dict, as_list, classify_resource, clean_text, normalize_links

_WEEK_MARKER = re.compile(r"Week (\d+)", re.IGNORECASE)
_GRADING_PATTERN = re.compile(
    r"A\s*=\s*(\d+)%.*?B\s*=\s*(\d+)%.*?C\s*=\s*(\d+)%.*?F\s*=\s*(\d+)%", re.DOTALL
)
_SEQUENCE_KEYS = {"study": "studies", "discussion": "discussions", "assignment": "assignments"}


def week_marker(title: Optional[str]) -> Optional[int]:
    """Number from a 'Week N' marker in a title, if any"""
    if not title:
        return None
    match = _WEEK_MARKER.search(str(title))
    return int(match.group(1)) if match else None


def extract_grading_scheme(text: Optional[str]) -> Optional[Dict[str, Dict[str, int]]]:
    """
    Best-effort scrape of an A/B/C/F percentage scale from overview prose.

    Returns None when the prose does not list all four grades in order;
    callers fall back to the default scale.
    """
    if not text:
        return None
    match = _GRADING_PATTERN.search(str(text))
    if not match:
        return None
    a, b, c, f = (int(value) for value in match.groups())
    return {"A": {"min": a}, "B": {"min": b}, "C": {"min": c}, "F": {"max": f}}


def iso_timestamp(value: Any) -> Optional[str]:
    """Render epoch milliseconds or an ISO string as UTC with millisecond precision"""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        else:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def normalize_type(activity_type: Optional[str]) -> str:
    return str(activity_type or "").lower() or "other"


def type_precedence(activity_type: Optional[str]) -> int:
    return TYPE_PRECEDENCE.get(normalize_type(activity_type), DEFAULT_TYPE_PRECEDENCE)


def count_by_type(activities: List[Dict[str, Any]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for activity in activities:
        key = normalize_type(activity.get("activityType"))
        counts[key] = counts.get(key, 0) + 1
    return counts


def order_units(units: List[Dict[str, Any]]) -> List[Tuple[int, Dict[str, Any]]]:
    """Units in week order as (source_position, unit) pairs"""
    keyed = []
    for position, unit in enumerate(units, start=1):
        title = as_dict(unit.get("unit")).get("title")
        marker = week_marker(title)
        keyed.append((marker if marker is not None else position, position, unit))
    keyed.sort(key=lambda item: item[0])
    return [(position, unit) for _, position, unit in keyed]


class CompetencyMapper:
    """Inverts activity→competency links into per-competency activity lists"""

    def __init__(self, resolver: ReferenceResolver, placements: Dict[Any, Tuple[int, int]]):
        self.resolver = resolver
        self.placements = placements

    def map(self, competencies: List[Any]) -> List[Dict[str, Any]]:
        mapped = []
        for competency in competencies:
            if not isinstance(competency, dict):
                continue
            activities = []
            for activity_id in dict.fromkeys(self.resolver.find_activities_for_competency(competency.get("id"))):
                entry = self._resolve(activity_id, competency.get("id"))
                if entry is not None:
                    activities.append(entry)
            mapped.append({
                "id": competency.get("id"),
                "text": competency.get("text"),
                "totalPoints": sum(a["points"] for a in activities),
                "activities": activities,
            })
        return mapped

    def _resolve(self, activity_id: Any, competency_id: Any) -> Optional[Dict[str, Any]]:
        entry = self.resolver.find_activity(activity_id)
        if entry is None:
            return None
        record = entry["activity"]
        if activity_id in self.placements:
            week_number, week_sequence = self.placements[activity_id]
        else:
            week_number, week_sequence = self.resolver.find_week_for_activity(activity_id) or 0, None
        return {
            "id": activity_id,
            "code": record.get("code"),
            "title": record.get("title"),
            "type": record.get("activityType") or "Unknown Type",
            "weight": record.get("gradeWeight") or 0,
            "points": record.get("gradePoints") or 0,
            "weekNumber": week_number,
            "weekSequence": week_sequence,
            "criteria": self.resolver.find_criteria_for_activity(activity_id, competency_id),
        }


class ResourceAggregator:
    """Classifies every resource and groups them by type with usage totals"""

    def __init__(self, resolver: ReferenceResolver, week_of_unit: Dict[int, int],
                 placements: Dict[Any, Tuple[int, int]]):
        self.resolver = resolver
        self.week_of_unit = week_of_unit
        self.placements = placements

    def track_usage(self, resource_id: Any) -> Dict[str, Any]:
        weeks = [self.week_of_unit.get(position, position)
                 for position in self.resolver.find_units_referencing(resource_id)]
        activities = []
        for entry in self.resolver.find_activities_referencing(resource_id):
            record = entry.get("activity") or {}
            placement = self.placements.get(record.get("id"))
            activities.append({
                "id": record.get("id"),
                "type": record.get("activityType"),
                "week": placement[0] if placement else None,
            })
        return {
            "weeks": weeks,
            "activities": activities,
            "totalReferences": len(weeks) + len(activities),
        }

    def aggregate(self, resources: List[Any]) -> Dict[str, Dict[str, Any]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for resource in resources:
            if not isinstance(resource, dict) or not isinstance(resource.get("resource"), dict):
                continue
            inner = resource["resource"]
            resource_type = classify_resource(resource)
            grouped.setdefault(resource_type, []).append({
                "id": inner.get("id"),
                "name": inner.get("resourceName"),
                "type": resource_type,
                "links": normalize_links(inner.get("persistentLinks")),
                "description": inner.get("annotation") or "",
                "mediaType": inner.get("mediaType") or "",
                "usageType": inner.get("usageType") or "",
                "usage": self.track_usage(inner.get("id")),
            })

        return {
            resource_type: {
                "resources": members,
                "count": len(members),
                "totalUsage": sum(m["usage"]["totalReferences"] for m in members),
            }
            for resource_type, members in grouped.items()
        }


class CourseTransformer:
    """
    Builds the normalized document for one source export.

    An instance owns its counters and output for the lifetime of one job;
    nothing here touches storage.
    """

    def __init__(self, source: Dict[str, Any], logger: Optional[logging.Logger] = None):
        self.source = source
        self.resolver = ReferenceResolver(source)
        self.logger = logger or logging.getLogger(__name__)
        self._reset()

    def _reset(self) -> None:
        self.activity_count = 0
        self.warnings: List[str] = []
        self._placements: Dict[Any, Tuple[int, int]] = {}
        self._week_of_unit: Dict[int, int] = {}
        self.transformed: Dict[str, Any] = {
            "course": {},
            "metadata": {},
            "competencies": [],
            "courseOverview": {},
            "weeks": [],
            "resources": {},
            "gradingScheme": {},
            "activityCounts": {
                "total": 0,
                "byType": {"discussion": 0, "assignment": 0, "study": 0, "other": 0},
            },
            "activitySequencing": {
                "byWeek": {},
                "byType": {"DISCUSSION": [], "STUDY": [], "ASSIGNMENT": [], "OTHER": []},
            },
        }

    def transform(self) -> Dict[str, Any]:
        self._reset()
        self.transform_metadata()
        self.transform_course_basics()
        self.transform_course_overview()
        self.transform_grading_scheme()
        self.transform_weeks()
        self.transform_competencies()
        self.transform_resources()
        self.finalize_activity_counts()
        return self.transformed

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.logger.warning(message)

    def calculate_total_points(self) -> float:
        return sum((entry.get("activity") or {}).get("gradePoints") or 0
                   for entry in self.resolver.activities)

    def transform_metadata(self) -> None:
        course = self.source.get("course") or {}
        self.transformed["metadata"] = {
            "lastUpdated": iso_timestamp(course.get("updatedDate")),
            "version": course.get("version"),
            "status": course.get("status"),
            "effectiveDate": course.get("launchDate"),
            "courseDesignModel": course.get("courseDesignModelType"),
            "totalWeeks": len(self.resolver.units),
            "createdBy": course.get("createdBy"),
            "updatedBy": course.get("updatedBy"),
        }

    def transform_course_basics(self) -> None:
        course = self.source.get("course") or {}
        self.transformed["course"] = {
            "id": course.get("id"),
            "number": course.get("number"),
            "name": course.get("name"),
            "credits": course.get("credits"),
            "version": course.get("version"),
            "type": course.get("instanceOf"),
            "totalPoints": self.calculate_total_points(),
        }

    def transform_course_overview(self) -> None:
        overview = self.source.get("courseOverview") or {}
        self.transformed["courseOverview"] = {
            "id": overview.get("id"),
            "text": clean_text(overview.get("text")),
        }

    def transform_grading_scheme(self) -> None:
        overview_text = (self.source.get("courseOverview") or {}).get("text") or ""
        scheme = extract_grading_scheme(overview_text)
        if scheme is None:
            self.logger.debug("No grading scale found in course overview, using default scale")
            scheme = {grade: dict(bound) for grade, bound in DEFAULT_GRADING_SCHEME.items()}
        self.transformed["gradingScheme"] = scheme

    def transform_weeks(self) -> None:
        weeks = []
        by_week = self.transformed["activitySequencing"]["byWeek"]
        by_type = self.transformed["activitySequencing"]["byType"]

        for week_number, (position, unit) in enumerate(order_units(self.resolver.units), start=1):
            self._week_of_unit[position] = week_number
            info = as_dict(unit.get("unit"))
            activities = self.transform_activities(as_list(unit.get("activityIds")), week_number)

            sequencing = {"studies": [], "discussions": [], "assignments": []}
            for activity in activities:
                kind = normalize_type(activity["activityType"])
                ref = {"id": activity["id"], "sequence": activity["sequenceNumber"]}
                if kind in _SEQUENCE_KEYS:
                    sequencing[_SEQUENCE_KEYS[kind]].append(ref)
                bucket = kind.upper() if kind in TRACKED_ACTIVITY_TYPES else "OTHER"
                by_type[bucket].append({"id": activity["id"], "week": week_number,
                                        "sequence": activity["sequenceNumber"]})
            by_week[str(week_number)] = sequencing

            weeks.append({
                "weekNumber": week_number,
                "id": info.get("id"),
                "title": info.get("title"),
                "introduction": self.resolver.find_introduction(unit.get("introductionId")),
                "duration": info.get("duration"),
                "activities": activities,
                "resources": self.get_week_resources(week_number),
                "activityCount": {
                    "total": len(activities),
                    "byType": count_by_type(activities),
                },
            })

        self.transformed["weeks"] = weeks

    def transform_activities(self, activity_ids: List[Any], week_number: int) -> List[Dict[str, Any]]:
        ordered = sorted(
            activity_ids,
            key=lambda activity_id: type_precedence(
                ((self.resolver.find_activity(activity_id) or {}).get("activity") or {}).get("activityType")
            ),
        )

        activities = []
        for sequence_number, activity_id in enumerate(ordered, start=1):
            entry = self.resolver.find_activity(activity_id)
            if entry is None:
                self.logger.debug(f"Week {week_number}: activity {activity_id} not found, skipping")
                continue

            self.activity_count += 1
            kind = normalize_type(entry["activity"].get("activityType"))
            counts = self.transformed["activityCounts"]["byType"]
            counts[kind] = counts.get(kind, 0) + 1

            activities.append(self._build_activity(entry, sequence_number, week_number))
            self._placements.setdefault(entry["activity"]["id"], (week_number, sequence_number))
        return activities

    def _build_activity(self, entry: Dict[str, Any], sequence_number: int, week_number: int) -> Dict[str, Any]:
        record = entry["activity"]
        text_id = entry.get("activityTextId")
        if text_id is None:
            text_id = record.get("activityTextId")

        competencies = [c for c in self.resolver.find_competencies_for_activity(record["id"]) if c is not None]
        return {
            "sequenceNumber": sequence_number,
            "id": record["id"],
            "code": record.get("code"),
            "title": record.get("title"),
            "activityType": record.get("activityType") or "",
            "gradeType": record.get("gradeType"),
            "gradeWeight": record.get("gradeWeight") or 0,
            "gradePoints": record.get("gradePoints") or 0,
            "weekNumber": week_number,
            "text": self.resolver.find_activity_text(text_id) if text_id is not None else "",
            "scoringGuide": self.transform_scoring_guide(record),
            "resources": self.get_activity_resources(entry),
            "competencies": list(dict.fromkeys(competencies)),
        }

    def transform_scoring_guide(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if record.get("scoringGuideType") != "RUBRIC":
            return None

        criteria = []
        for row in self.resolver.scoring_rows(record["id"]):
            criterion = row["criterion"]
            criteria.append({
                "id": criterion.get("id"),
                "text": criterion.get("text"),
                "gradeWeight": criterion.get("gradeWeight"),
                "gradePoints": criterion.get("gradePoints"),
                "competencyId": row.get("competencyId"),
                "performanceLevels": self.resolver.find_performance_levels(criterion.get("id")),
            })
        return {"criteria": criteria} if criteria else None

    def get_week_resources(self, week_number: int) -> List[Dict[str, Any]]:
        # Semana por nombre del recurso, no por id
        return [
            {"id": ref["id"], "name": ref.get("resourceName"), "type": ref.get("mediaType")}
            for ref in self.resolver.resource_references()
            if week_marker(ref.get("resourceName")) == week_number
        ]

    def get_activity_resources(self, entry: Dict[str, Any]) -> List[Dict[str, Any]]:
        resources = []
        for ref_id in as_list(entry.get("courseResourceReferenceIds")):
            ref = self.resolver.find_resource_reference(ref_id)
            if ref is not None:
                resources.append({"id": ref["id"], "name": ref.get("resourceName"),
                                  "type": ref.get("mediaType")})
        return resources

    def transform_competencies(self) -> None:
        mapper = CompetencyMapper(self.resolver, self._placements)
        competencies = self.source.get("competencies")
        self.transformed["competencies"] = mapper.map(competencies if isinstance(competencies, list) else [])

    def transform_resources(self) -> None:
        aggregator = ResourceAggregator(self.resolver, self._week_of_unit, self._placements)
        resources = self.source.get("resources")
        self.transformed["resources"] = aggregator.aggregate(resources if isinstance(resources, list) else [])

    def finalize_activity_counts(self) -> None:
        placed = sum(len(week["activities"]) for week in self.transformed["weeks"])
        if self.activity_count != placed:
            self._warn(f"Activity count mismatch: counter={self.activity_count}, actual={placed}")
            self.activity_count = placed

        counts = self.transformed["activityCounts"]
        folded = {kind: n for kind, n in counts["byType"].items()
                  if kind not in TRACKED_ACTIVITY_TYPES and kind != "other"}
        if folded:
            self.logger.debug(f"Counting activity types {sorted(folded)} as 'other'")

        by_type = {kind: counts["byType"].get(kind, 0) for kind in TRACKED_ACTIVITY_TYPES}
        by_type["other"] = counts["byType"].get("other", 0) + sum(folded.values())
        counts["byType"] = by_type
        counts["total"] = self.activity_count
