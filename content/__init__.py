"""content/ -- CMS catalogue: news, products, projects, services, events,
plus visitor comments and site settings.

Layer rule: content/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/ or auth/.
"""
