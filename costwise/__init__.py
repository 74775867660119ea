"""
Costwise - cost optimization analysis for AWS accounts.

Inspects an account read-only, runs a fixed set of rules over each resource
family and over daily billing data, and reports findings ranked by urgency.
"""

__version__ = "1.0.0"

from costwise.core.exceptions import CostwiseError

__all__ = ["CostwiseError"]
