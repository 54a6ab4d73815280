"""auth/ -- Authentication, registration and invitation domain for UserHub.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, cache/, or mail/.
api/ imports from auth/, not the other way around.
"""
