"""LangGraph node implementations."""
