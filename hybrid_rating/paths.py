from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


_ROOT_MARKERS = ("config.yaml", "pyproject.toml", ".git")


def resolve_path(repo_root: Path, path: Path | str) -> Path:
    p = Path(path) if isinstance(path, str) else path
    if not p.is_absolute():
        p = repo_root / p
    return p.resolve()


@dataclass(frozen=True)
class ProjectPaths:
    data_dir: Path
    artifacts_dir: Path
    evaluation_dir: Path

    @classmethod
    def from_repo_root(
        cls,
        repo_root: Path,
        *,
        data_dir: Path | str = "data/processed",
        artifacts_dir: Path | str = "artifacts",
    ) -> "ProjectPaths":
        artifacts_dir_p = resolve_path(repo_root, artifacts_dir)
        return cls(
            data_dir=resolve_path(repo_root, data_dir),
            artifacts_dir=artifacts_dir_p,
            evaluation_dir=artifacts_dir_p / "evaluation",
        )


def _has_marker(directory: Path) -> bool:
    return any((directory / marker).exists() for marker in _ROOT_MARKERS)


def get_repo_root() -> Path:
    """Return repo root by searching upwards for `config.yaml`, `pyproject.toml` or `.git`."""
    start = Path.cwd().resolve()
    for candidate in (start, *start.parents):
        if _has_marker(candidate):
            return candidate

    # Fallback: search upwards from this file (installed in editable mode).
    start = Path(__file__).resolve().parent
    for candidate in (start, *start.parents):
        if _has_marker(candidate):
            return candidate

    raise FileNotFoundError("Could not locate repo root (expected `config.yaml`, `pyproject.toml` or `.git`).")
