"""HTTP surface: FastAPI routers for sessions, review and schemes."""
