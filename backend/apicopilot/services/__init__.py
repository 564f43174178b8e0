# Services Package
# Tool catalog/invocation, AI providers, stores and the chat orchestrator
