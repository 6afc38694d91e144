from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class Segment(str, enum.Enum):
    """Condition population a snapshot is aggregated over"""
    RAW = "raw"
    GRADED = "graded"
    ALL = "all"


class SyncStatus(str, enum.Enum):
    """Price sync run status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class ItemState(str, enum.Enum):
    """Lifecycle of one catalog item inside a run"""
    PENDING = "pending"
    FETCHING = "fetching"
    SCORING = "scoring"
    AGGREGATING = "aggregating"
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    FAILED = "failed"
