"""Slack incoming-webhook notifier.

Messages are plain Block Kit sections. Delivery failures are logged and
reported as False; a chat outage never affects an analysis run.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from prguard_core.collaborators import ChatNotifier, NullNotifier
from prguard_core.config import Settings
from prguard_core.governance import describe_merge_recommendation
from prguard_core.models import AnalysisOutcome, RepoRef

logger = logging.getLogger(__name__)

_TIMEOUT = 10
_RISK_EMOJI = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢"}


def _section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


class SlackNotifier(ChatNotifier):
    def __init__(self, webhook_url: str, base_url: str | None = None):
        self.webhook_url = webhook_url
        self.base_url = base_url.rstrip("/") if base_url else None

    def _post(self, text: str, blocks: list[dict[str, Any]]) -> bool:
        try:
            response = requests.post(self.webhook_url, json={"text": text, "blocks": blocks}, timeout=_TIMEOUT)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning("Slack notification failed: %s", e)
            return False

    @staticmethod
    def _pr_link(outcome: AnalysisOutcome) -> str:
        r = outcome.request
        return f"<https://github.com/{r.full_name}/pull/{r.number}|{r.full_name}#{r.number}>"

    def send_action_report(self, outcome: AnalysisOutcome, analysis_id: str | None, actions: list[str]) -> bool:
        result = outcome.result
        decision = describe_merge_recommendation(result.merge_recommendation)
        lines = [
            f"*{self._pr_link(outcome)}*: {outcome.request.title}",
            f"{_RISK_EMOJI.get(result.overall_risk, '')} Risk *{result.overall_risk}* "
            f"(score {result.risk_score}/100) · {decision.emoji} {decision.label}",
            f"Product health {outcome.health.score}/100 ({outcome.health.status}, {outcome.health.trend})",
            f"{len(result.findings)} risk(s) · {len(result.scenarios)} scenario(s) · {len(result.gaps)} gap(s)",
        ]
        blocks = [_section("\n".join(lines))]
        if actions:
            blocks.append(_section("*Actions*\n" + "\n".join(f"• {a}" for a in actions)))
        if self.base_url and analysis_id:
            blocks.append(_section(f"<{self.base_url}/analyses/{analysis_id}|Open the analysis>"))
        return self._post(f"PRGuard analysed {outcome.request.ref}", blocks)

    def send_critical_alert(self, outcome: AnalysisOutcome) -> bool:
        critical = [f for f in outcome.result.findings if f.level in ("critical", "high")]
        lines = [f"🚨 *Critical risk in {self._pr_link(outcome)}*: {outcome.request.title}"]
        lines += [f"• [{f.level}] *{f.title}* ({f.area})" for f in critical[:5]]
        return self._post(f"Critical risk in {outcome.request.ref}", [_section("\n".join(lines))])

    def send_remediation_result(self, ref: RepoRef, number: int, attempts: int, success: bool, message: str) -> bool:
        status = "✅ fixed" if success else "🙋 needs a human"
        text = f"Auto-fix for {ref.full_name}#{number}: {status} after {attempts} attempt(s)"
        return self._post(text, [_section(f"*{text}*\n{message}")])


def build_notifier(settings: Settings) -> ChatNotifier:
    if settings.slack_enabled and settings.slack_webhook_url:
        return SlackNotifier(settings.slack_webhook_url, base_url=settings.base_url)
    return NullNotifier()
