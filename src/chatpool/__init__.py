"""chatpool — outbound credential-pool manager for LLM chat-completion APIs."""

__version__ = "0.1.0"
