"""Persistence and catalog storage for SkillPath."""
