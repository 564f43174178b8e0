# AI Services Package
# Provider adapters (Gemini, OpenAI) and the retrying generation service
