"""
Companion programs that aggregate per-case results.
"""
