"""auth/ -- Authentication gate for StashIt.

Layer rule: auth/ imports stdlib, third-party libraries, and core/ only.
It does NOT import from api/ or vault/.
api/ imports from auth/, not the other way around.
"""
