"""auth/ -- Authentication and authorization package for the VRC CMS API.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/ or content/.
api/ imports from auth/, not the other way around.
"""
