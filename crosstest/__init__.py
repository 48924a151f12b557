"""Bootstrap coordinator for cross-process protocol tests."""
