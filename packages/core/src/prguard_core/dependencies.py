"""Dependency manifest changes and the risks they carry.

Reads the unified diff only: package.json and requirements*.txt hunks are
parsed line by line into added/removed/upgraded/downgraded entries. Lock files
are recognised as dependency changes but not parsed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEPENDENCY_FILES = (
    ("package.json", "npm"),
    ("package-lock.json", "npm"),
    ("yarn.lock", "yarn"),
    ("pnpm-lock.yaml", "pnpm"),
    ("requirements.txt", "pip"),
    ("Pipfile", "pip"),
    ("Pipfile.lock", "pip"),
    ("pyproject.toml", "pip"),
    ("poetry.lock", "pip"),
    ("go.mod", "go"),
    ("go.sum", "go"),
    ("Cargo.toml", "cargo"),
    ("Cargo.lock", "cargo"),
)

# name → (reason, level)
CRITICAL_PACKAGES = {
    "jsonwebtoken": ("JWT authentication", "high"),
    "bcrypt": ("Password hashing", "critical"),
    "bcryptjs": ("Password hashing", "critical"),
    "passport": ("Authentication", "high"),
    "express-session": ("Sessions", "high"),
    "helmet": ("HTTP security headers", "medium"),
    "cors": ("CORS", "medium"),
    "crypto-js": ("Cryptography", "critical"),
    "node-forge": ("Cryptography", "critical"),
    "stripe": ("Stripe payments", "critical"),
    "@stripe/stripe-js": ("Stripe payments", "critical"),
    "braintree": ("Braintree payments", "critical"),
    "pg": ("PostgreSQL", "high"),
    "mysql2": ("MySQL", "high"),
    "mongoose": ("MongoDB", "high"),
    "prisma": ("Prisma ORM", "high"),
    "@prisma/client": ("Prisma ORM", "high"),
    "typeorm": ("TypeORM", "high"),
    "sequelize": ("Sequelize ORM", "high"),
    "express": ("Web framework", "high"),
    "fastify": ("Web framework", "high"),
    "next": ("Next.js framework", "high"),
    "react": ("React UI", "medium"),
    "zod": ("Schema validation", "medium"),
    "axios": ("HTTP client", "medium"),
    "bullmq": ("Job queues", "high"),
    # Python
    "cryptography": ("Cryptography", "critical"),
    "pyjwt": ("JWT authentication", "high"),
    "passlib": ("Password hashing", "critical"),
    "django": ("Web framework", "high"),
    "flask": ("Web framework", "high"),
    "fastapi": ("Web framework", "high"),
    "sqlalchemy": ("ORM", "high"),
    "psycopg2": ("PostgreSQL", "high"),
    "psycopg": ("PostgreSQL", "high"),
    "celery": ("Job queues", "high"),
    "pydantic": ("Schema validation", "medium"),
    "requests": ("HTTP client", "medium"),
}

_FILE_SECTION_RE = re.compile(r"^diff --git a/(\S+) b/(\S+)$")
_NPM_ENTRY_RE = re.compile(r'^([+\- ])\s*"([^"]+)":\s*"([^"]+)"')
_NPM_OBJECT_RE = re.compile(r'^[+\- ]\s*"([^"]+)"\s*:\s*\{')
_PIP_ENTRY_RE = re.compile(r"^([+-])\s*([A-Za-z0-9][A-Za-z0-9._\-\[\]]*)\s*(?:[=~!<>]=?|===)\s*([^\s;#,]+)")

_PACKAGE_META_KEYS = {
    "name",
    "version",
    "description",
    "main",
    "module",
    "types",
    "license",
    "type",
    "author",
    "homepage",
}

_NPM_CATEGORIES = {
    "dependencies": "production",
    "devDependencies": "development",
    "peerDependencies": "peer",
    "optionalDependencies": "optional",
}


@dataclass(frozen=True)
class DependencyChange:
    name: str
    change: str  # "added" | "removed" | "upgraded" | "downgraded" | "changed"
    old_version: str | None = None
    new_version: str | None = None
    category: str = "production"
    critical: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class DependencyRisk:
    level: str
    title: str
    description: str
    packages: tuple[str, ...]
    recommendation: str


@dataclass
class DependencyResult:
    has_changes: bool
    package_manager: str = "unknown"
    changes: list[DependencyChange] = field(default_factory=list)
    risks: list[DependencyRisk] = field(default_factory=list)

    def count(self, change: str) -> int:
        return sum(1 for c in self.changes if c.change == change)

    @property
    def critical_changes(self) -> int:
        return sum(1 for c in self.changes if c.critical)


def _version_parts(version: str) -> list[int]:
    parts = []
    for piece in re.sub(r"[\^~>=<v ]", "", version).split("."):
        digits = re.match(r"\d+", piece)
        parts.append(int(digits.group()) if digits else 0)
    return parts


def compare_versions(old: str, new: str) -> str:
    old_parts, new_parts = _version_parts(old), _version_parts(new)
    for i in range(max(len(old_parts), len(new_parts))):
        a = old_parts[i] if i < len(old_parts) else 0
        b = new_parts[i] if i < len(new_parts) else 0
        if b > a:
            return "upgraded"
        if b < a:
            return "downgraded"
    return "changed"


def is_major_bump(change: DependencyChange) -> bool:
    if change.change != "upgraded" or not change.old_version or not change.new_version:
        return False
    return _version_parts(change.new_version)[0] > _version_parts(change.old_version)[0]


def _split_by_file(diff: str) -> dict[str, list[str]]:
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    for line in diff.splitlines():
        match = _FILE_SECTION_RE.match(line)
        if match:
            current = sections.setdefault(match.group(2), [])
            continue
        if current is not None:
            current.append(line)
    return sections


def _pair_changes(
    added: dict[str, tuple[str, str]], removed: dict[str, tuple[str, str]]
) -> list[DependencyChange]:
    changes = []
    for name, (version, category) in added.items():
        reason = CRITICAL_PACKAGES.get(name.lower(), (None, None))[0]
        if name in removed:
            old = removed[name][0]
            change = compare_versions(old, version)
            changes.append(DependencyChange(name, change, old, version, category, reason is not None, reason))
        else:
            changes.append(DependencyChange(name, "added", None, version, category, reason is not None, reason))
    for name, (version, category) in removed.items():
        if name in added:
            continue
        reason = CRITICAL_PACKAGES.get(name.lower(), (None, None))[0]
        changes.append(DependencyChange(name, "removed", version, None, category, reason is not None, reason))
    return changes


def parse_package_json(lines: list[str]) -> list[DependencyChange]:
    added: dict[str, tuple[str, str]] = {}
    removed: dict[str, tuple[str, str]] = {}
    # A hunk may start inside a section whose header is not in the diff;
    # entries seen before any header count as production dependencies.
    category: str | None = "production"
    for line in lines:
        section = _NPM_OBJECT_RE.match(line)
        if section:
            category = _NPM_CATEGORIES.get(section.group(1))
            continue
        if line[1:].strip().startswith("}"):
            category = "production"
            continue
        entry = _NPM_ENTRY_RE.match(line)
        if not entry or category is None:
            continue
        sign, name, version = entry.groups()
        if name.startswith("@types/") or name in _PACKAGE_META_KEYS:
            continue
        if sign == "+":
            added[name] = (version, category)
        elif sign == "-":
            removed[name] = (version, category)
    return _pair_changes(added, removed)


def parse_requirements(lines: list[str], category: str = "production") -> list[DependencyChange]:
    added: dict[str, tuple[str, str]] = {}
    removed: dict[str, tuple[str, str]] = {}
    for line in lines:
        if line.startswith(("+++", "---")):
            continue
        entry = _PIP_ENTRY_RE.match(line)
        if not entry:
            continue
        sign, name, version = entry.groups()
        name = re.sub(r"\[.*\]", "", name).lower()
        (added if sign == "+" else removed)[name] = (version, category)
    return _pair_changes(added, removed)


def identify_risks(changes: list[DependencyChange]) -> list[DependencyRisk]:
    risks = []
    for change in (c for c in changes if c.critical):
        level = CRITICAL_PACKAGES.get(change.name.lower(), ("", "high"))[1]
        if change.change in ("added", "removed"):
            what = change.change
        else:
            what = f"{change.change} from {change.old_version} to {change.new_version}"
        risks.append(
            DependencyRisk(
                level=level,
                title=f"Critical package changed: {change.name}",
                description=f"{change.reason}: {what}",
                packages=(change.name,),
                recommendation="Needs a detailed review and regression tests"
                if level == "critical"
                else "Check the changelog and test dependent features",
            )
        )

    major = [c.name for c in changes if is_major_bump(c)]
    if major:
        risks.append(
            DependencyRisk(
                "high",
                "Potential breaking changes",
                f"{len(major)} package(s) with a major version bump",
                tuple(major),
                "Check changelogs for breaking changes and update call sites",
            )
        )

    removed = [c.name for c in changes if c.change == "removed" and c.category == "production"]
    if removed:
        risks.append(
            DependencyRisk(
                "medium",
                "Production packages removed",
                f"{len(removed)} production dependency(ies) removed",
                tuple(removed),
                "Make sure no code still references them",
            )
        )

    added = [c.name for c in changes if c.change == "added"]
    if len(added) > 5:
        risks.append(
            DependencyRisk(
                "medium",
                "Many dependencies added",
                f"{len(added)} new dependencies increase bundle size and attack surface",
                tuple(added),
                "Check that each one is needed",
            )
        )

    downgraded = [c.name for c in changes if c.change == "downgraded"]
    if downgraded:
        risks.append(
            DependencyRisk(
                "medium",
                "Version downgrade",
                f"{len(downgraded)} package(s) downgraded",
                tuple(downgraded),
                "Confirm why; downgrades can reintroduce vulnerabilities",
            )
        )
    return risks


def _manifest(path: str) -> str | None:
    name = path.rsplit("/", 1)[-1]
    for manifest, manager in DEPENDENCY_FILES:
        if name == manifest:
            return manager
    if name.startswith("requirements") and name.endswith(".txt"):
        return "pip"
    return None


def analyze_dependencies(changed_files: list[str], diff: str) -> DependencyResult:
    managers = [m for m in (_manifest(f) for f in changed_files) if m]
    if not managers:
        return DependencyResult(has_changes=False)

    changes: list[DependencyChange] = []
    for path, lines in _split_by_file(diff).items():
        name = path.rsplit("/", 1)[-1]
        if name == "package.json":
            changes.extend(parse_package_json(lines))
        elif name.startswith("requirements") and name.endswith(".txt"):
            category = "development" if ("dev" in name or "test" in name) else "production"
            changes.extend(parse_requirements(lines, category))

    result = DependencyResult(
        has_changes=True,
        package_manager=managers[0],
        changes=changes,
        risks=identify_risks(changes),
    )
    logger.info(
        "Dependency analysis: %s, %d change(s), %d risk(s)", result.package_manager, len(changes), len(result.risks)
    )
    return result


_CHANGE_ICONS = {"added": "➕", "removed": "➖", "upgraded": "⬆️", "downgraded": "⬇️", "changed": "🔄"}


def format_dependency_section(result: DependencyResult) -> str:
    if not result.has_changes:
        return ""
    lines = [
        "### 📦 Dependencies",
        "",
        f"**Package manager:** {result.package_manager}",
        "",
        "| Added | Removed | Upgraded | Downgraded | Critical |",
        "|-------|---------|----------|------------|----------|",
        f"| {result.count('added')} | {result.count('removed')} | {result.count('upgraded')} "
        f"| {result.count('downgraded')} | {result.critical_changes} |",
        "",
    ]
    for change in result.changes:
        versions = " → ".join(v for v in (change.old_version, change.new_version) if v)
        flag = " ⚠️" if change.critical else ""
        lines.append(f"- {_CHANGE_ICONS[change.change]} `{change.name}` {versions} ({change.category}){flag}")
    if result.risks:
        lines += ["", "**Dependency risks:**", ""]
        for risk in result.risks:
            lines.append(f"- **[{risk.level}] {risk.title}**: {risk.description}. {risk.recommendation}.")
    lines.append("")
    return "\n".join(lines)
