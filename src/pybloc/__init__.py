"""pybloc package."""
