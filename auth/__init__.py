"""auth/ -- Authentication and role-based access control package for Snapp.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
The one exception is auth/dependencies.py, which imports fastapi because it is
part of the FastAPI dependency injection system.
"""
