import ast
import re
import sys
import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
LOCAL_MODULES = {
    "fansync",
    "settings",
    "workers",
    "migrations",
    "logging_config",
    "main",
    "manage",
    "migrate",
    "run_fastapi",
}
DISTRIBUTIONS = {
    "dependency_injector": "dependency-injector",
    "dotenv": "python-dotenv",
    "fastapi_async_sqlalchemy": "fastapi-async-sqlalchemy",
    "pydantic_settings": "pydantic-settings",
    "pythonjsonlogger": "python-json-logger",
    "sentry_sdk": "sentry-sdk",
}


def _imported_modules(path: Path) -> set[str]:
    modules = set()
    for node in ast.walk(ast.parse(path.read_text())):
        if isinstance(node, ast.Import):
            modules.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            modules.add(node.module.split(".")[0])
    return modules


def _declared_distributions() -> set[str]:
    project = tomllib.loads((ROOT / "pyproject.toml").read_text())["project"]
    return {re.split(r"[\[<>=!~ ]", requirement, maxsplit=1)[0].lower() for requirement in project["dependencies"]}


def test_every_third_party_import_is_declared():
    sources = [*ROOT.glob("*.py")]
    for package in ("fansync", "settings", "workers", "migrations"):
        sources.extend((ROOT / package).rglob("*.py"))

    imported = set()
    for source in sources:
        imported |= _imported_modules(source)
    third_party = imported - LOCAL_MODULES - set(sys.stdlib_module_names)

    declared = _declared_distributions()
    missing = sorted(name for name in third_party if DISTRIBUTIONS.get(name, name).lower() not in declared)
    assert missing == []
