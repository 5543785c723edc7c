"""
Pydantic schemas for request and response bodies.

Schemas are kept apart from the SQL in ``services`` so that the API
representation does not follow the table layout.
"""
