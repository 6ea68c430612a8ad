"""
Incident Responder - API Package
"""
