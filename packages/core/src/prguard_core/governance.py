"""Risk governance: product health and merge decisions.

Everything here is a pure function of an AnalysisResult. ProductHealth is
always recomputed, never stored on the result, so it cannot drift from the
findings it summarises.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from prguard_core.models import AnalysisResult, ProductHealth, RiskFinding

# Deduction per item from a starting health of 100.
_HEALTH_DEDUCTIONS = {"critical": 25, "high": 10, "medium": 3}
_CRITICAL_GAP_DEDUCTION = 10

_STATUS_THRESHOLDS = ((80, "healthy"), (60, "attention"), (40, "degraded"))


@dataclass(frozen=True)
class MergeDecision:
    recommendation: str
    emoji: str
    label: str
    reason: str


_MERGE_DECISIONS = {
    "merge_ok": MergeDecision("merge_ok", "✅", "Merge OK", "No significant risks found. Safe to merge."),
    "attention": MergeDecision(
        "attention",
        "⚠️",
        "Attention Required",
        "Medium risks detected. Review recommendations before merging.",
    ),
    "block": MergeDecision(
        "block",
        "🚫",
        "Block - Fix Required",
        "Critical or high risks detected. Fix issues before merging.",
    ),
}

_AREA_TRANSLATIONS = (
    ("security", "User trust and security"),
    ("authentication", "Account access"),
    ("authorization", "Permissions and privacy"),
    ("auth", "Account access"),
    ("injection", "Data integrity"),
    ("performance", "Speed and responsiveness"),
    ("loading", "User waiting time"),
    ("memory", "Application stability"),
    ("cache", "Load speed"),
    ("database", "Integrity of user data"),
    ("migration", "Service continuity"),
    ("data", "Customer data"),
    ("payment", "Payment processing"),
    ("checkout", "Purchase flow"),
    ("api", "Integrations"),
    ("integration", "External services"),
    ("notification", "Alerts and notifications"),
    ("login", "System access"),
    ("signup", "New user registration"),
    ("search", "Search"),
    ("ux", "User experience"),
    ("ui", "Visual experience"),
)

_URGENCY = {"critical": "immediate", "high": "short-term", "medium": "short-term", "low": "long-term"}
_URGENCY_ORDER = {"immediate": 0, "short-term": 1, "long-term": 2}

_DEFAULT_ACTIONS = {
    "critical": "Block the merge until fixed. Priority P0.",
    "high": "Fix before the release. Priority P1.",
    "medium": "Plan a fix for the next iteration. Priority P2.",
    "low": "Track for future improvement.",
}


def compute_health(result: AnalysisResult) -> ProductHealth:
    score = 100
    for level, deduction in _HEALTH_DEDUCTIONS.items():
        score -= result.count(level) * deduction
    score -= sum(1 for g in result.gaps if g.severity == "critical") * _CRITICAL_GAP_DEDUCTION
    score = max(0, min(100, score))

    status = "critical"
    for threshold, name in _STATUS_THRESHOLDS:
        if score >= threshold:
            status = name
            break

    if result.count("critical") > 0:
        trend = "degrading"
    elif not result.findings:
        trend = "improving"
    else:
        trend = "stable"

    return ProductHealth(score=score, status=status, trend=trend)


def describe_merge_recommendation(recommendation: str) -> MergeDecision:
    try:
        return _MERGE_DECISIONS[recommendation]
    except KeyError:
        raise ValueError(f"Unknown merge recommendation: {recommendation!r}")


# ---------------------------------------------------------------------------
# Business-language translation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BusinessRisk:
    title: str
    impact: str
    area: str
    urgency: str  # "immediate" | "short-term" | "long-term"
    level: str
    action: str


@dataclass(frozen=True)
class ProductImpactReport:
    health: ProductHealth
    decision: MergeDecision
    summary: str
    risks: tuple[BusinessRisk, ...] = field(default_factory=tuple)


def translate_area(area: str) -> str:
    lowered = area.lower()
    for key, translation in _AREA_TRANSLATIONS:
        if key in lowered:
            return translation
    return area


def _business_impact(finding: RiskFinding) -> str:
    if finding.impact:
        return finding.impact
    area = finding.area.lower()
    if finding.level == "critical":
        if "security" in area or "auth" in area:
            return "A data leak would cost customer trust and create legal exposure."
        if "payment" in area or "checkout" in area:
            return "Payment failures cause direct revenue loss."
        return f"Critical functionality compromised in {finding.area!r}."
    suffix = "May lead to user churn or support tickets." if finding.level == "high" else "Moderate impact."
    return f"{finding.area}: {finding.description[:120]}. {suffix}"


def business_risks(result: AnalysisResult) -> list[BusinessRisk]:
    """Critical, high and medium findings restated for a product audience, most urgent first."""
    items = [
        BusinessRisk(
            title=f.title or f.area,
            impact=_business_impact(f),
            area=translate_area(f.area),
            urgency=_URGENCY[f.level],
            level=f.level,
            action=f.mitigation or _DEFAULT_ACTIONS[f.level],
        )
        for f in result.findings
        if f.level in ("critical", "high", "medium")
    ]
    return sorted(items, key=lambda r: _URGENCY_ORDER[r.urgency])


def executive_summary(result: AnalysisResult, health: ProductHealth, risks: list[BusinessRisk]) -> str:
    if result.product_impact:
        parts = [result.product_impact]
    elif health.status == "critical":
        parts = ["This change carries critical risks that can directly affect users."]
    elif health.status == "degraded":
        parts = ["This change contains risks that need attention before production."]
    elif health.status == "attention":
        parts = ["Moderate impact. Some points need attention."]
    else:
        parts = ["Low product impact. No significant risk for users."]

    immediate = sum(1 for r in risks if r.urgency == "immediate")
    if immediate:
        parts.append(f"{immediate} risk(s) require immediate action.")
    return " ".join(parts)


def product_impact_report(result: AnalysisResult) -> ProductImpactReport:
    health = compute_health(result)
    risks = business_risks(result)
    return ProductImpactReport(
        health=health,
        decision=describe_merge_recommendation(result.merge_recommendation),
        summary=executive_summary(result, health, risks),
        risks=tuple(risks),
    )
