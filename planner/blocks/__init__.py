"""Slack Block Kit builders."""
