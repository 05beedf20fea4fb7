"""
Session authentication app.

Verifies session tokens forwarded by the web front-end.
"""
