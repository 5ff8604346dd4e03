"""
Resolución de referencias por id y normalización de contenido del export
"""
import re
from collections import defaultdict
from typing import List, Dict, Any, Optional

from bs4 import BeautifulSoup

_WHITESPACE = re.compile(r"\s+")


def _strip_markup(text: str) -> str:
    if "<" in text or "&" in text:
        text = BeautifulSoup(text, "html.parser").get_text(separator=" ")
    return _WHITESPACE.sub(" ", text).strip()


def clean_text(html: Optional[str]) -> str:
    """Strip markup and collapse whitespace; clean text passes through unchanged"""
    if html is None:
        return ""
    text = _strip_markup(str(html))
    # Entidades escapadas pueden revelar etiquetas nuevas
    while True:
        stripped = _strip_markup(text)
        if stripped == text:
            return text
        text = stripped


# Primera regla que coincide gana
_RESOURCE_RULES = (
    ("READING_LIST", "name", ("reading list",)),
    ("EXTERNAL_LINK", "media", ("link",)),
    ("MULTIMEDIA", "media", ("video", "audio")),
    ("MEDIA", "media", ("graphic", "image")),
    ("TUTORIAL", "name", ("tutorial",)),
    ("TEMPLATE", "name", ("template",)),
    ("DOCUMENT", "file", ("pdf",)),
    ("SIMULATION", "name", ("simulation",)),
    ("ASSESSMENT", "name", ("assessment",)),
    ("RUBRIC", "name", ("rubric",)),
)


def classify_resource(resource: Dict[str, Any]) -> str:
    """Classify a source resource entry into the fixed resource taxonomy"""
    inner = resource.get("resource") or {}
    fields = {
        "name": (inner.get("resourceName") or "").lower(),
        "media": (inner.get("mediaType") or "").lower(),
        "file": (inner.get("fileType") or "").lower(),
    }
    for resource_type, field_name, needles in _RESOURCE_RULES:
        if any(needle in fields[field_name] for needle in needles):
            return resource_type
    return "OTHER"


def normalize_links(links: Any) -> List[str]:
    if not links:
        return []
    if isinstance(links, str):
        return [links]
    return list(links) if isinstance(links, list) else []


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def is_id(value: Any) -> bool:
    """Ids are scalars; lists, dicts and None never match anything"""
    return isinstance(value, (str, int, float))


class ReferenceResolver:
    """
    Read-only query surface over a raw course export.

    Every join table is indexed once here; lookups return None or an empty
    value on a miss and never raise. Ids that are not scalars are skipped
    while indexing and miss on lookup.
    """

    def __init__(self, source: Dict[str, Any]):
        self.source = source
        self.units = [as_dict(u) for u in as_list(source.get("units"))]
        self.activities = [as_dict(a) for a in as_list(source.get("activities"))]

        self._activities: Dict[Any, Dict[str, Any]] = {}
        for entry in self.activities:
            activity_id = as_dict(entry.get("activity")).get("id")
            if is_id(activity_id):
                self._activities.setdefault(activity_id, entry)

        self._texts = self._index_by_id(source.get("activityText"))
        self._introductions = self._index_by_id(source.get("introductions"))

        self._criteria_by_activity: Dict[Any, List[Dict]] = defaultdict(list)
        self._criteria_by_competency: Dict[Any, List[Dict]] = defaultdict(list)
        for row in as_list(source.get("criteria")):
            row = as_dict(row)
            if is_id(row.get("activityId")):
                self._criteria_by_activity[row["activityId"]].append(row)
            if is_id(row.get("competencyId")):
                self._criteria_by_competency[row["competencyId"]].append(row)

        self._levels: Dict[Any, List[Dict]] = defaultdict(list)
        for row in as_list(source.get("performanceLevels")):
            row = as_dict(row)
            if is_id(row.get("criterionId")):
                self._levels[row["criterionId"]].append(row)

        self._unit_position: Dict[Any, int] = {}
        self._units_by_resource: Dict[Any, List[int]] = defaultdict(list)
        for position, unit in enumerate(self.units, start=1):
            for activity_id in filter(is_id, as_list(unit.get("activityIds"))):
                self._unit_position.setdefault(activity_id, position)
            for ref_id in filter(is_id, as_list(unit.get("courseResourceReferenceIds"))):
                self._units_by_resource[ref_id].append(position)

        self._activities_by_resource: Dict[Any, List[Dict]] = defaultdict(list)
        for entry in self.activities:
            for ref_id in filter(is_id, as_list(entry.get("courseResourceReferenceIds"))):
                self._activities_by_resource[ref_id].append(entry)

        self._references: Dict[Any, Dict[str, Any]] = {}
        for row in as_list(source.get("resourcesReferences")):
            ref = as_dict(as_dict(row).get("courseResourceReference"))
            if is_id(ref.get("id")):
                self._references.setdefault(ref["id"], ref)

    @staticmethod
    def _index_by_id(rows: Any) -> Dict[Any, Dict[str, Any]]:
        index = {}
        for row in as_list(rows):
            row = as_dict(row)
            if is_id(row.get("id")):
                index.setdefault(row["id"], row)
        return index

    @staticmethod
    def _lookup(index: Dict[Any, Any], key: Any, default: Any = None) -> Any:
        return index.get(key, default) if is_id(key) else default

    def find_activity(self, activity_id: Any) -> Optional[Dict[str, Any]]:
        return self._lookup(self._activities, activity_id)

    def find_activity_text(self, text_id: Any) -> str:
        row = self._lookup(self._texts, text_id)
        return clean_text(row.get("text")) if row else ""

    def find_introduction(self, intro_id: Any) -> Optional[Dict[str, Any]]:
        row = self._lookup(self._introductions, intro_id)
        if row is None:
            return None
        return {"id": row["id"], "text": clean_text(row.get("text"))}

    def find_week_for_activity(self, activity_id: Any) -> Optional[int]:
        return self._lookup(self._unit_position, activity_id)

    def scoring_rows(self, activity_id: Any) -> List[Dict[str, Any]]:
        """Criteria rows for an activity that carry an embedded criterion"""
        return [row for row in self._lookup(self._criteria_by_activity, activity_id, [])
                if isinstance(row.get("criterion"), dict)]

    def find_criteria_for_activity(self, activity_id: Any, competency_id: Any) -> List[Dict[str, Any]]:
        return [
            {
                "id": row["criterion"].get("id"),
                "text": row["criterion"].get("text"),
                "weight": row["criterion"].get("gradeWeight"),
                "points": row["criterion"].get("gradePoints"),
                "competencyId": row.get("competencyId"),
            }
            for row in self.scoring_rows(activity_id)
            if row.get("competencyId") == competency_id
        ]

    def find_activities_for_competency(self, competency_id: Any) -> List[Any]:
        return [row.get("activityId") for row in self._lookup(self._criteria_by_competency, competency_id, [])
                if is_id(row.get("activityId"))]

    def find_competencies_for_activity(self, activity_id: Any) -> List[Any]:
        return [row.get("competencyId") for row in self._lookup(self._criteria_by_activity, activity_id, [])
                if is_id(row.get("competencyId"))]

    def find_performance_levels(self, criterion_id: Any) -> List[Dict[str, Any]]:
        levels = []
        for row in self._lookup(self._levels, criterion_id, []):
            level = as_dict(row.get("performanceLevel"))
            levels.append({
                "type": level.get("performanceLevelType"),
                "points": level.get("gradePoints"),
                "text": level.get("text"),
            })
        return levels

    def find_resource_reference(self, ref_id: Any) -> Optional[Dict[str, Any]]:
        return self._lookup(self._references, ref_id)

    def resource_references(self) -> List[Dict[str, Any]]:
        return list(self._references.values())

    def find_units_referencing(self, resource_id: Any) -> List[int]:
        """Source positions (1-based) of units that reference a resource"""
        return list(self._lookup(self._units_by_resource, resource_id, []))

    def find_activities_referencing(self, resource_id: Any) -> List[Dict[str, Any]]:
        return list(self._lookup(self._activities_by_resource, resource_id, []))
