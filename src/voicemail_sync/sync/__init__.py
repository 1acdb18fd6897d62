"""Voicemail list synchronization.

This package keeps a page of voicemail records in step with the platform and
layers the widget's local state on top of it.
"""
