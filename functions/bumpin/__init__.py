"""
BumpIn backend: profiles, business cards and the connection graph.

Provides a FastAPI application on top of a document store (Firestore, SQL or
in-memory), plus a worker that delivers push notifications.
"""
