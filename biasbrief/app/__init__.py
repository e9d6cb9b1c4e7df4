"""FastAPI web layer serving the Article Query and Category List endpoints."""
