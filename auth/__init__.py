"""auth/ -- Authentication and session-lifecycle engine for AuthWarden.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. The signing key, TTLs and lockout
policy are handed in by whoever builds the objects (api/main.py, main.py).
api/ imports from auth/, not the other way around.
"""
