"""
Document extraction app.

Reads the user's Google Docs and returns their plain text.
"""
