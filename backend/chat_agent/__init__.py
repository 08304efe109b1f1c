"""AI chat agent backend: FastAPI + LangGraph + Gemini, persisted in Convex."""

__version__ = "1.0.0"
