"""
Planguard - Source Package

Tracks a savings plan against recorded actuals and flags deviations
outside configurable guardrail bands.

DESIGN PRINCIPLES:
1. Malformed cells never abort an import
2. An empty plan is never persisted silently
3. Every stored date is a canonical YYYY-MM-DD key
4. Storage backends are interchangeable
"""

__version__ = "1.0.0"
__author__ = "Planguard Team"
