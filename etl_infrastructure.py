"""
Implementaciones concretas de lectura, validación de forma y persistencia
"""
import json
import logging
import os
import tempfile
from dataclasses import fields
from pathlib import Path
from typing import List, Dict, Any, Optional

from etl_domain import (
    REQUIRED_SOURCE_KEYS,
    ActivityPolicyConfig,
    ConfigError,
    PersistError,
    SourceLoadError,
    SourceShapeError,
    TransformConfig,
)


class JSONSourceLoader:
    def __init__(self, max_file_size: int = TransformConfig.max_file_size):
        self.max_file_size = max_file_size

    def load(self, filepath: Path) -> Dict[str, Any]:
        try:
            size = filepath.stat().st_size
        except OSError as e:
            raise SourceLoadError(f"Cannot read {filepath.name}: {e}") from e

        if size > self.max_file_size:
            limit_mb = self.max_file_size // (1024 * 1024)
            raise SourceLoadError(f"File size exceeds maximum limit of {limit_mb}MB")

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise SourceLoadError(f"Invalid JSON format: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise SourceLoadError(f"Cannot read {filepath.name}: {e}") from e


def validate_source_shape(data: Any) -> None:
    """Reject sources the transformer cannot work with at all"""
    if not isinstance(data, dict):
        raise SourceShapeError("Source data must be a JSON object")

    missing = [key for key in REQUIRED_SOURCE_KEYS if data.get(key) is None]
    if missing:
        raise SourceShapeError(f"Source data missing required keys: {', '.join(missing)}")

    if not isinstance(data["activities"], list):
        raise SourceShapeError("Source data activities must be an array")

    for index, entry in enumerate(data["activities"]):
        activity = entry.get("activity") if isinstance(entry, dict) else None
        if not isinstance(activity, dict) or activity.get("id") is None:
            raise SourceShapeError(f"Invalid activity object at index {index}")


class JSONRepository:
    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def save(self, document: Dict[str, Any], filename: str) -> Path:
        """Write the document atomically so a failed write leaves nothing behind"""
        filepath = self.base_path / filename
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=self.base_path,
                                             prefix=f".{filename}.", suffix=".tmp",
                                             delete=False) as f:
                tmp_name = f.name
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, filepath)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise PersistError(f"Error saving {filename}: {e}") from e
        return filepath

    def load(self, filename: str) -> Dict[str, Any]:
        with open(self.base_path / filename, 'r', encoding='utf-8') as f:
            return json.load(f)

    def save_report(self, filename: str, data: Any) -> Path:
        filepath = self.base_path / filename
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=4)
        return filepath

    def delete(self, filename: str) -> None:
        (self.base_path / filename).unlink(missing_ok=True)

    def list_outputs(self, suffix: str = TransformConfig.output_suffix) -> List[Path]:
        return sorted(self.base_path.glob(f"*{suffix}"))


def load_config(path: Optional[Path], logger: Optional[logging.Logger] = None) -> TransformConfig:
    """Read config.json; missing file means defaults"""
    logger = logger or logging.getLogger(__name__)
    if path is None or not path.exists():
        return TransformConfig()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    known = {f.name for f in fields(TransformConfig)}
    policy_known = {f.name for f in fields(ActivityPolicyConfig)}

    values = {}
    for key, value in raw.items():
        if key == "activity_policy":
            continue
        if key not in known:
            logger.warning(f"Ignoring unknown config key '{key}'")
            continue
        values[key] = value

    policy_raw = raw.get("activity_policy") or {}
    if not isinstance(policy_raw, dict):
        raise ConfigError(f"activity_policy in {path} must be a JSON object")
    policy_values = {}
    for key, value in policy_raw.items():
        if key not in policy_known:
            logger.warning(f"Ignoring unknown activity_policy key '{key}'")
            continue
        policy_values[key] = bool(value)

    return TransformConfig(activity_policy=ActivityPolicyConfig(**policy_values), **values)
