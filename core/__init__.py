"""core/ -- Kernel layer: configuration and time source.

Layer rule: core/ imports only stdlib + third-party libraries.
staff/ imports from core/, not the other way around.
"""
