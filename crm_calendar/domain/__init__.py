"""Domain services: the view pipeline, series edits, overview metrics and the calendar service."""
