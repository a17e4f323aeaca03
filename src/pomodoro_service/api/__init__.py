"""HTTP transport for the pomodoro service."""
