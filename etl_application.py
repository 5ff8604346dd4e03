"""
Puertos (interfaces) que el pipeline espera de la infraestructura
"""
from pathlib import Path
from typing import Any, Dict, List, Protocol


class SourceLoader(Protocol):
    def load(self, filepath: Path) -> Dict[str, Any]:
        ...


class Repository(Protocol):
    base_path: Path

    def save(self, document: Dict[str, Any], filename: str) -> Path:
        ...

    def load(self, filename: str) -> Dict[str, Any]:
        ...

    def save_report(self, filename: str, data: Any) -> Path:
        ...

    def delete(self, filename: str) -> None:
        ...

    def list_outputs(self) -> List[Path]:
        ...
