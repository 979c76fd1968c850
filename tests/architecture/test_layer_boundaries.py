"""
Layer boundaries.

1. pawn_kernel/** may NOT import pawn_engines, pawn_services or
   pawn_config.  The kernel never depends upward.

2. pawn_engines/** is pure computation: no ORM, no database, no kernel
   models, services or selectors.

3. pawn_kernel/domain/** must not import ORM or DB packages at runtime.

4. pawn_config/** builds policy objects only; it never touches the
   database or the services.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _relative(path: Path) -> str:
    return path.relative_to(ROOT).as_posix()


def _extract_imports(filepath: Path, skip_type_checking: bool = False) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))

    guarded: set[int] = set()
    if skip_type_checking:
        for node in ast.walk(tree):
            if isinstance(node, ast.If) and _is_type_checking(node.test):
                for child in node.body:
                    for inner in ast.walk(child):
                        guarded.add(id(inner))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in guarded:
            continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _is_type_checking(test: ast.expr) -> bool:
    if isinstance(test, ast.Name):
        return test.id == "TYPE_CHECKING"
    if isinstance(test, ast.Attribute):
        return test.attr == "TYPE_CHECKING"
    return False


def _violations(package: str, forbidden: tuple[str, ...], skip_type_checking: bool = False) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath, skip_type_checking):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {_relative(filepath)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:

    FORBIDDEN_PREFIXES = (
        "pawn_engines",
        "pawn_services",
        "pawn_config",
    )

    def test_packages_exist(self):
        assert _python_files("pawn_kernel")
        assert _python_files("pawn_engines")

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations("pawn_kernel", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Kernel boundary violation: pawn_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "pawn_kernel.db",
        "pawn_kernel.models",
        "pawn_kernel.services",
        "pawn_kernel.selectors",
        "pawn_services",
        "pawn_config",
    )

    def test_engines_are_pure(self):
        violations = _violations("pawn_engines", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Engine purity violation: pawn_engines/** must stay free of "
            "persistence and orchestration:\n" + "\n".join(violations)
        )


class TestKernelDomainPurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "pawn_kernel.db",
        "pawn_kernel.models",
        "pawn_kernel.services",
        "pawn_kernel.selectors",
    )

    def test_domain_no_orm_imports(self):
        # dtos.py may name ORM types for annotations under TYPE_CHECKING only
        violations = _violations(
            "pawn_kernel/domain", self.FORBIDDEN_PREFIXES, skip_type_checking=True
        )

        assert not violations, (
            "Domain purity violation: pawn_kernel/domain/** must not "
            "import ORM or DB packages:\n" + "\n".join(violations)
        )


class TestConfigBoundary:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "pawn_kernel.db",
        "pawn_kernel.models",
        "pawn_kernel.services",
        "pawn_kernel.selectors",
        "pawn_services",
        "pawn_engines",
    )

    def test_config_only_builds_policies(self):
        violations = _violations("pawn_config", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Config boundary violation: pawn_config/** must not import "
            "persistence, engines or services:\n" + "\n".join(violations)
        )
