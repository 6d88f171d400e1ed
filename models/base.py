from sqlalchemy.orm import declarative_base
import enum
import time

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class JobStatus(str, enum.Enum):
    """Ingestion job status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def enum_values(enum_cls):
    """Persist enum values ("pending") rather than member names ("PENDING")"""
    return [member.value for member in enum_cls]


def epoch_now() -> int:
    """Current time as epoch seconds, the unit of every stored timestamp"""
    return int(time.time())
