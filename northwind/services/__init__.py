"""
Services Layer

OData publishing services that:
- Accept an ApiContext (configuration, session, caller roles) and plain inputs
- Return JSON-ready payloads or domain objects
- Do NOT depend on HTTP request/response objects
- Raise NorthwindApiError subclasses; routes map them to status codes
"""
