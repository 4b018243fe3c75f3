"""Deterministic building blocks: input sanitizing and the decision tree."""
