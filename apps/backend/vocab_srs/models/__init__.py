"""Pydantic models exchanged between the routers, the engine and the stores."""
