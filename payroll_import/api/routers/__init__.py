"""
FastAPI routers for organizing API endpoints.

Each router groups the endpoints of one import concern so main.py only
wires them together.
"""
