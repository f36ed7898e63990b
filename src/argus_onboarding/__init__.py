"""Argus agent onboarding and AWS readiness tooling."""

__version__ = "1.0.0"
