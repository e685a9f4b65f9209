"""
Pydantic schemas for the Haven CAT engine.
"""
from haven.schemas.cat_session import CATSessionSnapshot, ResponseSnapshot

__all__ = ["CATSessionSnapshot", "ResponseSnapshot"]
