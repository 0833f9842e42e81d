"""Tests for PR comment formatting."""

from prguard_core.formatter import (
    assemble_comment,
    feedback_section,
    format_analysis_body,
    format_error_comment,
    format_test_suggestions,
    format_working_comment,
    next_step_hint,
    risk_score_bar,
)
from prguard_core.governance import product_impact_report
from prguard_core.models import AnalysisResult, Gap, GeneratedTest, RiskFinding, TestCoverage, TestScenario


def _result(**kwargs) -> AnalysisResult:
    defaults = dict(
        overall_risk="high",
        summary="Adds coupon codes to checkout.",
        risk_score=75,
        merge_recommendation="block",
        change_type="feature",
        findings=(
            RiskFinding(
                "critical",
                "payment",
                "Double | discount",
                description="Coupons stack.",
                mitigation="Reject a second coupon",
                impact="Revenue loss",
            ),
            RiskFinding("low", "ui", "Button colour"),
        ),
        gaps=(Gap("Expiry rules", "medium", "Define expiry"),),
        scenarios=(TestScenario(id="TC001", title="Apply coupon", priority="high"),),
        test_coverage=TestCoverage(unit=("coupon.py",)),
        acceptance_criteria=("Coupons expire",),
    )
    defaults.update(kwargs)
    return AnalysisResult(**defaults)


def test_risk_score_bar():
    assert risk_score_bar(0) == "`░░░░░░░░░░` 0/100"
    assert risk_score_bar(75) == "`████████░░` 75/100"
    assert risk_score_bar(100) == "`██████████` 100/100"


class TestFormatAnalysisBody:
    def test_sections_present(self):
        result = _result()
        body = format_analysis_body(result, product_impact_report(result))
        assert body.startswith("## 🛡️ PRGuard risk analysis")
        assert "> ### 🚫 Block - Fix Required" in body
        assert "> | 2 | 1 | 0 | 1 | 1 |" in body
        assert "**Change type:** feature" in body
        assert "### 🎯 Product impact" in body
        assert "| 🔴 Critical | payment | Double \\| discount |" in body
        assert "**Mitigation:** Reject a second coupon" in body
        assert "- **TC001** [high] Apply coupon _(unit)_" in body
        assert "- 🟡 Medium **Expiry rules**: Define expiry" in body
        assert "- Coupons expire" in body
        assert "**Unit:**" in body
        assert "**E2E:**" not in body

    def test_low_findings_have_no_details_block(self):
        result = _result(findings=(RiskFinding("low", "ui", "Button colour"),))
        body = format_analysis_body(result, product_impact_report(result))
        assert "<details>" not in body

    def test_minimal_result(self):
        result = AnalysisResult(overall_risk="low", summary="Docs only", risk_score=0, merge_recommendation="merge_ok")
        body = format_analysis_body(result, product_impact_report(result))
        assert "✅ Merge OK" in body
        assert "### 🧪 Test scenarios" not in body
        assert "### 📊 Test coverage" not in body


def test_assemble_comment_skips_empty_sections():
    assert assemble_comment(["## A\n", "", "  \n", "\nB"]) == "## A\n\nB"


def test_feedback_and_hint():
    assert "👍" in feedback_section()
    assert "`/prguard generate tests`" in next_step_hint()


def test_working_comment():
    assert "running the analysis" in format_working_comment("analyze")
    assert "running the test generation" in format_working_comment("generate-tests")


class TestFormatErrorComment:
    def test_for_command(self):
        text = format_error_comment(RuntimeError("boom"), "analyze")
        assert "the `/prguard analyze` command" in text
        assert "RuntimeError: boom" in text

    def test_for_automatic_run(self):
        assert "the analysis of this PR" in format_error_comment(ValueError("x"))


class TestFormatTestSuggestions:
    def test_no_tests(self):
        assert "No tests could be generated" in format_test_suggestions([])

    def test_code_blocks_by_language(self):
        text = format_test_suggestions(
            [
                GeneratedTest("test_cart.py", "def test_cart(): ...", "pytest"),
                GeneratedTest("cart.spec.ts", "it('works')", "", "e2e"),
            ]
        )
        assert "2 test file(s) suggested" in text
        assert "```python\ndef test_cart(): ...\n```" in text
        assert "```typescript\nit('works')\n```" in text
        assert "(e2e, n/a)" in text
