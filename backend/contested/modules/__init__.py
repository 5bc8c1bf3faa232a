"""
Domain modules.

Pure decision logic (route access, matching scores, bundle presets) lives
here so routers and services can share it without touching storage.
"""
