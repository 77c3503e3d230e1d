"""Fail when a pensieve_index layer imports a layer above it."""

from __future__ import annotations

import ast
from collections.abc import Iterator
from pathlib import Path

PACKAGE_NAME = "pensieve_index"
DEFAULT_SOURCE_ROOT = Path(__file__).resolve().parents[1] / "src" / PACKAGE_NAME

# Lower layers first; each layer may import only layers listed before it.
LAYER_ORDER = ("domain", "core", "adapters", "application", "api", "cli")
ALLOWED: dict[str, set[str]] = {
    layer: set(LAYER_ORDER[: index + 1]) for index, layer in enumerate(LAYER_ORDER)
}


def _module_parts(path: Path, source_root: Path) -> list[str]:
    return [PACKAGE_NAME, *path.relative_to(source_root).with_suffix("").parts]


def _imported_modules(node: ast.Import | ast.ImportFrom, parts: list[str]) -> Iterator[str]:
    if isinstance(node, ast.Import):
        yield from (alias.name for alias in node.names)
        return
    if node.level:
        package = parts[:-1]
        if node.level > len(package):
            return
        base = package[: len(package) - node.level + 1]
    else:
        base = []
    module = ".".join([*base, *(node.module.split(".") if node.module else [])])
    yield module
    # `from pensieve_index import core` names the layer in the alias list.
    for alias in node.names:
        yield f"{module}.{alias.name}"


def _layer_of(module: str) -> str | None:
    parts = module.split(".")
    if len(parts) < 2 or parts[0] != PACKAGE_NAME:
        return None
    return parts[1] if parts[1] in ALLOWED else None


def check_file(path: Path, source_root: Path = DEFAULT_SOURCE_ROOT) -> list[str]:
    parts = _module_parts(path, source_root)
    layer = _layer_of(".".join(parts))
    if layer is None:
        return []
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    imported: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            for module in _imported_modules(node, parts):
                target = _layer_of(module)
                if target is not None:
                    imported.add(target)
    return [
        f"{path}: {layer} must not import {PACKAGE_NAME}.{target}"
        for target in sorted(imported - ALLOWED[layer])
    ]


def check_import_boundaries(source_root: Path = DEFAULT_SOURCE_ROOT) -> list[str]:
    violations: list[str] = []
    for path in sorted(source_root.rglob("*.py")):
        violations.extend(check_file(path, source_root))
    return violations


if __name__ == "__main__":
    found = check_import_boundaries()
    if found:
        raise SystemExit("\n".join(found))
    print("import boundary checks passed")
