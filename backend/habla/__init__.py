"""Habla progress backend: XP, achievements, daily goals and practice sessions."""
