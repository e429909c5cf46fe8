"""Configuration: pydantic-settings for scalars, YAML for the queue table."""
