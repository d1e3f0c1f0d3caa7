"""
Import-boundary enforcement.

1. Domain purity        -- timesheet_kernel/domain/** may not import the
                           database, ORM models, store, selectors or services.
2. Wall clock           -- only domain/clock.py reads the wall clock.
3. Config direction     -- timesheet_kernel/** never imports timesheet_config.
4. Layer direction      -- store and selectors never import services; models
                           never import store, selectors or services.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
KERNEL = ROOT / "timesheet_kernel"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(root: Path) -> list[Path]:
    """Return all .py files under *root*, sorted for deterministic order."""
    return sorted(root.rglob("*.py"))


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


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(tree)
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(root: Path, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(root):
        for lineno, module in _extract_imports(path):
            if _matches_any(module, forbidden):
                found.append(f"{path.relative_to(ROOT)}:{lineno} imports {module}")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDomainPurity:
    FORBIDDEN = (
        "sqlalchemy",
        "timesheet_kernel.db",
        "timesheet_kernel.models",
        "timesheet_kernel.store",
        "timesheet_kernel.selectors",
        "timesheet_kernel.services",
        "timesheet_config",
        "yaml",
    )

    def test_domain_imports_nothing_impure(self):
        violations = _violations(KERNEL / "domain", self.FORBIDDEN)
        assert not violations, "\n".join(violations)

    def test_only_clock_reads_wall_clock(self):
        impure = {"datetime.now", "datetime.utcnow", "date.today", "time.time", "os.environ"}
        violations = [
            f"{path.relative_to(ROOT)}:{lineno} uses {ref}"
            for path in _python_files(KERNEL)
            if path.name != "clock.py"
            for lineno, ref in _extract_attribute_calls(path)
            if ref in impure
        ]
        assert not violations, "\n".join(violations)


class TestLayerDirection:
    def test_kernel_never_imports_config(self):
        violations = _violations(KERNEL, ("timesheet_config",))
        assert not violations, "\n".join(violations)

    @pytest.mark.parametrize("layer", ["store", "selectors"])
    def test_read_and_write_layers_never_import_services(self, layer):
        violations = _violations(KERNEL / layer, ("timesheet_kernel.services",))
        assert not violations, "\n".join(violations)

    def test_models_import_only_db(self):
        violations = _violations(
            KERNEL / "models",
            (
                "timesheet_kernel.store",
                "timesheet_kernel.selectors",
                "timesheet_kernel.services",
            ),
        )
        assert not violations, "\n".join(violations)

    def test_store_never_imports_selectors(self):
        violations = _violations(KERNEL / "store", ("timesheet_kernel.selectors",))
        assert not violations, "\n".join(violations)
