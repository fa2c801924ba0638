"""
Pydantic schemas package.

WHY: Schemas define the request and response contracts of the API,
separate from the SQLAlchemy models they are built from.
"""
