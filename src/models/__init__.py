from src.models.base import Base
from src.models.opportunity import OpportunityRecord
from src.models.pool import PoolRecord

__all__ = [
    "Base",
    "PoolRecord",
    "OpportunityRecord",
]
