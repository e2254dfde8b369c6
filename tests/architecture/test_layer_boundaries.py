"""
Import-boundary enforcement.

1. Kernel boundary     -- vehicle_tax_kernel/** may not import engines,
                          config or services.
2. Engine purity       -- vehicle_tax_engines/** may not import the ORM,
                          models, selectors, kernel services, config or
                          services.  Precision helpers in
                          vehicle_tax_kernel.db.types are allowed.
3. Engine no-impure    -- engines may not read the wall clock or the
                          environment.
4. Config isolation    -- vehicle_tax_config/** may import only the
                          kernel's logging module.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == prefix or module.startswith(f"{prefix}.") for prefix in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    return [
        f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'"
        for path in _python_files(package)
        for lineno, module in _extract_imports(path)
        if _matches_any(module, forbidden)
    ]


class TestKernelBoundary:
    """The kernel depends on nothing above it."""

    FORBIDDEN_PREFIXES = (
        "vehicle_tax_engines",
        "vehicle_tax_config",
        "vehicle_tax_services",
        "scripts",
    )

    def test_packages_exist(self):
        for package in ("vehicle_tax_kernel", "vehicle_tax_engines", "vehicle_tax_config"):
            assert _python_files(package), f"no sources found under {package}"

    def test_kernel_has_no_upward_imports(self):
        violations = _violations("vehicle_tax_kernel", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Kernel boundary violation:\n" + "\n".join(violations)
        )


class TestEnginePurity:
    """Engines are pure functions of their arguments."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "vehicle_tax_kernel.models",
        "vehicle_tax_kernel.selectors",
        "vehicle_tax_kernel.services",
        "vehicle_tax_kernel.db.engine",
        "vehicle_tax_kernel.db.base",
        "vehicle_tax_config",
        "vehicle_tax_services",
    )

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("vehicle_tax_engines", self.FORBIDDEN_PREFIXES)

        assert not violations, (
            "Engine purity violation:\n" + "\n".join(violations)
        )

    def test_engine_files_do_not_read_clock_or_environment(self):
        violations: list[str] = []
        for path in _python_files("vehicle_tax_engines"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    name = f"{node.value.id}.{node.attr}"
                    if name in self.FORBIDDEN_CALLS:
                        violations.append(f"  {path.relative_to(ROOT)}:{node.lineno} uses {name}")

        assert not violations, "Impure call in engines:\n" + "\n".join(violations)


class TestConfigIsolation:
    """Config reads files; it never touches the database or the engines."""

    ALLOWED_KERNEL_MODULES = ("vehicle_tax_kernel.logging_config",)

    def test_config_imports_only_kernel_logging(self):
        violations: list[str] = []
        for path in _python_files("vehicle_tax_config"):
            for lineno, module in _extract_imports(path):
                if _matches_any(module, ("vehicle_tax_engines", "vehicle_tax_services", "sqlalchemy")):
                    violations.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
                elif _matches_any(module, ("vehicle_tax_kernel",)) and not _matches_any(
                    module, self.ALLOWED_KERNEL_MODULES
                ):
                    violations.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")

        assert not violations, "Config isolation violation:\n" + "\n".join(violations)
