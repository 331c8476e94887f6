"""
Credit System Models
Request bodies and the ledger entry shape
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime


class LedgerEntry(BaseModel):
    """One creditHistory record"""
    operation: str
    amount: int
    timestamp: datetime
    description: str = ""
    metadata: Optional[Dict[str, Any]] = None


class AddCreditsRequest(BaseModel):
    """Body of POST /api/users/addCredits"""
    amount: int
    description: Optional[str] = Field(default=None, max_length=500)


class UseCreditsRequest(BaseModel):
    """Body of POST /api/users/useCredits"""
    amount: int
    operation: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)
