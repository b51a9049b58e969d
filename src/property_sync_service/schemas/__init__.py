"""
Pydantic schemas for the Property Sync Service.
"""
