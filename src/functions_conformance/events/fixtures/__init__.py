"""Bundled event fixtures (input and expected output for each encoding)."""
