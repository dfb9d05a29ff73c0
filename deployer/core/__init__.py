"""Core deployment pipeline: events, registry, materialization, builds and orchestration."""
