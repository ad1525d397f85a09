"""
Shared utilities for the clinic outreach scheduler
"""
