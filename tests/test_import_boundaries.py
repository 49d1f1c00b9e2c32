from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType

ROOT = Path(__file__).resolve().parents[1]


def _load_checker_module() -> ModuleType:
    module_path = ROOT / "tools" / "check_imports.py"
    spec = importlib.util.spec_from_file_location("check_imports_tool", module_path)
    assert spec is not None
    loader = spec.loader
    assert loader is not None
    module = importlib.util.module_from_spec(spec)
    loader.exec_module(module)
    return module


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_check_file_allows_core_importing_domain(tmp_path: Path) -> None:
    checker = _load_checker_module()
    source_root = tmp_path / "src" / "autoblog_client"
    core_file = source_root / "core" / "sse.py"
    _write(core_file, "from autoblog_client.domain import errors\n")
    violations = checker.check_file(core_file, source_root)
    assert violations == []


def test_check_file_rejects_core_importing_adapters(tmp_path: Path) -> None:
    checker = _load_checker_module()
    source_root = tmp_path / "src" / "autoblog_client"
    core_file = source_root / "core" / "sse.py"
    _write(core_file, "from autoblog_client.adapters import http_transport\n")
    violations = checker.check_file(core_file, source_root)
    assert len(violations) == 1
    assert "core must not import autoblog_client.adapters" in violations[0]


def test_check_file_resolves_relative_imports(tmp_path: Path) -> None:
    checker = _load_checker_module()
    source_root = tmp_path / "src" / "autoblog_client"
    domain_file = source_root / "domain" / "models.py"
    _write(domain_file, "from ..api import jobs\n")
    violations = checker.check_file(domain_file, source_root)
    assert len(violations) == 1
    assert "domain must not import autoblog_client.api" in violations[0]


def test_adapters_must_not_import_api(tmp_path: Path) -> None:
    checker = _load_checker_module()
    source_root = tmp_path / "src" / "autoblog_client"
    adapter_file = source_root / "adapters" / "storage.py"
    _write(adapter_file, "import autoblog_client.api.identity\n")
    assert checker.check_file(adapter_file, source_root)


def test_repository_source_tree_respects_layers() -> None:
    checker = _load_checker_module()
    assert checker.check_import_boundaries() == []


def test_single_dot_import_stays_in_current_package(tmp_path: Path) -> None:
    checker = _load_checker_module()
    source_root = tmp_path / "src" / "autoblog_client"
    domain_file = source_root / "domain" / "models.py"
    _write(domain_file, "from .errors import BackendError\n")
    assert checker.check_file(domain_file, source_root) == []
