"""
Backend package for the travel itinerary planner.

Provides a live data binding over the itinerary record store (Cloud Firestore
or an in-memory emulation), the planner page view-model and a FastAPI
application exposing both.
"""
