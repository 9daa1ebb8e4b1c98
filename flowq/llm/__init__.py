"""Vertex AI Gemini and embedding access."""
