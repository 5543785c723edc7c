"""
Service layer abstraction.

Each service encapsulates business logic for a domain and receives the
``Database`` handle explicitly, so API handlers and the seeder never
open connections themselves.
"""
