"""Exception hierarchy shared by every prguard package.

Fatal errors propagate out of an orchestrator run after best-effort
reporting. Degradable and non-fatal failures never surface as these types;
they are logged where they happen.
"""

from __future__ import annotations


class PRGuardError(Exception):
    """Base class for all prguard errors."""


class ConfigError(PRGuardError):
    """Invalid or inconsistent configuration (unknown trigger mode, provider, ...)."""


class PayloadError(PRGuardError):
    """A webhook payload is malformed or lacks a required identifier."""


class HostError(PRGuardError):
    """The version-control host could not serve a required request."""


class AnalysisError(PRGuardError):
    """The primary analysis capability failed or returned an unusable result."""


class RemediationBoundError(PRGuardError):
    """A remediation run was asked to record more attempts than its bound allows."""
