"""Collaborative event planner with an AI planning assistant."""
