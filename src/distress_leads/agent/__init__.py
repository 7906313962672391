"""
Agent Package

Scheduled agent cycle: reasoning directive, targeted seed, crawlers and bulk delta.
"""
