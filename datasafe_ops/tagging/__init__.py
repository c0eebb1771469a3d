"""Defined tag rules for Data Safe targets."""
