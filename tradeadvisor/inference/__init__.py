"""Request assembly and HTTP transport for provider completion endpoints."""
