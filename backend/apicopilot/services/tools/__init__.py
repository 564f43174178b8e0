"""
Tool Calling System for API Copilot

Turns a tenant's registered REST endpoints into model-callable tools and
executes the calls a model requests.

Main components:
- schema.py: Pydantic models for tools, tool calls and tool results
- catalog.py: Builds the tool catalog from active registered APIs
- executor.py: Resolves tool calls to endpoints and performs the HTTP requests
"""
