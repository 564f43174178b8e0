# Persistence contracts consumed by the chat engine and their SQLAlchemy implementations
