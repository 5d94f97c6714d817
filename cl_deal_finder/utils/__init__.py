"""
Shared utilities: structured logging, error tracking, pacing and input validation.
"""
