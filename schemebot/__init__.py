"""SchemeBot — welfare scheme eligibility with auditable confidence and human review."""

__version__ = "0.1.0"
