"""Feedback-response visibility rules, rank consistency repair and deletion cascades."""
