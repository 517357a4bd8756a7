"""Agent package exposing the planning assistant."""

from .llm_agent import PlannerAgent, build_system_prompt, analyze_best_time_slots

__all__ = ["PlannerAgent", "build_system_prompt", "analyze_best_time_slots"]
