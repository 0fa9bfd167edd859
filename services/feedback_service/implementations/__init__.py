"""Concrete implementations of the Feedback Service protocols."""
