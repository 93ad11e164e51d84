"""staff/ -- Staff credential, session, and audit package.

Layer rule: staff/ imports from core/ plus stdlib and third-party libraries.
Presentation layers import from staff/, not the other way around.
Only staff/dependencies.py may import fastapi.
"""
