"""Planning orchestration and Slack handlers."""
