"""Spaced-repetition (SM-2) review scheduling backend for vocabulary learners."""
