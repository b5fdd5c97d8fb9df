"""
NaaS Pricing Package

Multi-year quote calculation for NaaS service components.
Resolves component costs in dependency order, then rolls them up with
volume, bundle and term discounts plus CPI escalation.
"""

__version__ = "2.0.0"
