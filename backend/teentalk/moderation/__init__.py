"""Trust scoring, report escalation and the document-event triggers."""
