"""
Backend package for the agency website API.

This package provides a FastAPI application for orders, the admin dashboard,
user profiles, pricing plans and contact submissions, with MongoDB and
in-memory storage behind one repository interface.
"""
