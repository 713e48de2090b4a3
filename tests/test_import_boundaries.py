from __future__ import annotations

import ast
from pathlib import Path

PACKAGE = Path(__file__).resolve().parents[1] / "claude_action"


def _imported_names(path: Path) -> list[str]:
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    names: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            module = node.module or ""
            names.append(module)
            names.extend(f"{module}.{alias.name}" for alias in node.names)
    return names


def test_pipeline_does_not_import_platform_adapters_or_http() -> None:
    forbidden = ("github_client", "gitlab_client", "github_context", "gitlab_context", "requests")
    paths = sorted((PACKAGE / "pipeline").rglob("*.py"))
    assert paths
    for path in paths:
        for name in _imported_names(path):
            parts = name.lower().split(".")
            assert not any(token in parts for token in forbidden), (
                f"{path} imports platform-specific module: {name}"
            )


def test_canonical_models_stay_free_of_platform_code() -> None:
    for path in (PACKAGE / "models").rglob("*.py"):
        for name in _imported_names(path):
            assert "platforms" not in name.split("."), f"{path} imports {name}"
