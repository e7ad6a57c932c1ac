"""
Kernel boundary and invariants contract.

1. engagement_kernel/** may NOT import engagement_services or
   engagement_config.  The kernel never depends upward.

2. engagement_kernel/domain/** imports no ORM or DB package at runtime;
   model types appear under TYPE_CHECKING only.

3. The payment provider SDK is used from engagement_services only; the
   kernel never imports it.

4. The kernel invariants declaration is complete.

These tests read source code via AST and never import the checked modules.
"""

import ast
import glob
from pathlib import Path

from engagement_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


def _python_files(root: str) -> list[Path]:
    return sorted(Path(p) for p in glob.glob(str(ROOT / root / "**" / "*.py"), recursive=True))


def _runtime_imports(filepath: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import outside ``if TYPE_CHECKING:``."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    skipped: set[int] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.If):
            test = node.test
            if (isinstance(test, ast.Name) and test.id == "TYPE_CHECKING") or (
                isinstance(test, ast.Attribute) and test.attr == "TYPE_CHECKING"
            ):
                for child in node.body:
                    for inner in ast.walk(child):
                        skipped.add(id(inner))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in skipped:
            continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(root):
        for lineno, module in _runtime_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations("engagement_kernel", FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, (
            "Kernel boundary violation: engagement_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )

    def test_kernel_does_not_call_payment_provider(self):
        violations = _violations("engagement_kernel", ("stripe",))
        assert not violations, "\n".join(violations)

    def test_config_does_not_import_services(self):
        violations = _violations("engagement_config", ("engagement_services",))
        assert not violations, "\n".join(violations)


class TestKernelDomainPurity:
    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "engagement_kernel.db",
        "engagement_kernel.models",
        "engagement_kernel.services",
    )

    def test_domain_no_orm_imports(self):
        violations = _violations("engagement_kernel/domain", self.FORBIDDEN_MODULES)
        assert not violations, (
            "Domain purity violation: engagement_kernel/domain/** must not "
            "import ORM/DB packages at runtime:\n" + "\n".join(violations)
        )

    def test_files_found(self):
        assert _python_files("engagement_kernel/domain")


class TestKernelInvariantsDeclaration:
    def test_required_invariants_declared(self):
        required = {
            "IN_PROGRESS_REQUIRES_PAYMENT",
            "AWAITING_PAYMENT_REQUIRES_SIGNATURE",
            "SINGLE_ACTIVE_CONTRACT",
            "TERMINAL_STATUS",
            "EXACTLY_ONCE_PAYMENT",
        }
        declared = {inv.name for inv in KernelInvariant}
        assert required <= declared
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)

    def test_forbidden_imports_declared(self):
        for pkg in ("engagement_services", "engagement_config"):
            assert pkg in FORBIDDEN_KERNEL_IMPORTS
