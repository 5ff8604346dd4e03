"""
Entidades de dominio, configuración y errores para el ETL de exportaciones de cursos
"""
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

REQUIRED_SOURCE_KEYS = ("course", "units", "activities", "competencies")

REQUIRED_OUTPUT_SECTIONS = (
    "course",
    "metadata",
    "competencies",
    "weeks",
    "resources",
    "activityCounts",
    "activitySequencing",
)

TRACKED_ACTIVITY_TYPES = ("discussion", "assignment", "study")

# Orden de actividades dentro de una semana
TYPE_PRECEDENCE = {"study": 1, "discussion": 2, "assignment": 3}
DEFAULT_TYPE_PRECEDENCE = 4

DEFAULT_GRADING_SCHEME = {
    "A": {"min": 90},
    "B": {"min": 80},
    "C": {"min": 70},
    "F": {"max": 69},
}


class CourseTransformError(Exception):
    """Base error for a single document's transformation job"""


class SourceLoadError(CourseTransformError):
    """Input file could not be read, is too large or is not valid JSON"""


class SourceShapeError(CourseTransformError):
    """Source document lacks the collections the transformer needs"""


class StructuralInvariantError(CourseTransformError):
    """Assembled document violates a structural invariant"""


class PersistError(CourseTransformError):
    """Normalized document could not be written to storage"""


class ConfigError(ValueError):
    """config.json is unreadable or has the wrong shape"""


@dataclass(frozen=True)
class ActivityPolicyConfig:
    require_text: bool = True
    validate_sequencing: bool = True
    check_competency_mapping: bool = False
    require_activity_code: bool = True
    enforce_type_order: bool = True


@dataclass(frozen=True)
class TransformConfig:
    output_suffix: str = "_output.json"
    concurrent_limit: int = 3
    max_file_size: int = 50 * 1024 * 1024
    validate_activities: bool = True
    generate_analytics: bool = False
    batch_report: bool = True
    activity_policy: ActivityPolicyConfig = field(default_factory=ActivityPolicyConfig)

    def output_name(self, source_name: str) -> str:
        if source_name.endswith(".json"):
            return source_name[: -len(".json")] + self.output_suffix
        return source_name + self.output_suffix


@dataclass
class JobSuccess:
    filename: str
    output_path: str
    metadata: Dict[str, Any]
    timestamp: str
    warnings: List[str] = field(default_factory=list)
    analytics: Optional[Dict[str, Any]] = None


@dataclass
class JobFailure:
    filename: str
    error: str
    timestamp: str
    details: str = ""


@dataclass
class BatchResult:
    successful: List[JobSuccess] = field(default_factory=list)
    failed: List[JobFailure] = field(default_factory=list)
    total_processed: int = 0
    start_time: Optional[str] = None
    end_time: Optional[str] = None
