"""
Command-line verification tools for a deployed funnel.
"""
